# services/plan_service.py
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.errors import ConflictError
from models.models import PlanBilling, PlanOption, StudentPlan, StudentPlanStatus
from services.catalog_service import get_plan_option
from services.identity_service import get_student

logger = logging.getLogger(__name__)


def active_plan_for(session: Session, student_id: int) -> Optional[Tuple[StudentPlan, PlanOption]]:
    """The student's active plan with its option, or None."""
    statement = (
        select(StudentPlan, PlanOption)
        .join(PlanOption, PlanOption.id == StudentPlan.plan_option_id)
        .where(
            StudentPlan.student_id == student_id,
            StudentPlan.status == StudentPlanStatus.ACTIVE.value,
        )
        .order_by(StudentPlan.id.desc())
    )
    return session.exec(statement).first()


def select_plan(
    session: Session,
    student_id: int,
    plan_option_id: int,
    billing: PlanBilling = PlanBilling.RECURRING,
) -> StudentPlan:
    """Switch the student to a plan option; the previous active plan expires."""
    get_student(session, student_id)
    option = get_plan_option(session, plan_option_id)
    billing = PlanBilling(billing)

    current = active_plan_for(session, student_id)
    if current:
        plan, current_option = current
        if current_option.id == option.id and plan.billing == billing.value:
            return plan
        plan.status = StudentPlanStatus.EXPIRED.value
        session.add(plan)
        session.flush()

    new_plan = StudentPlan(
        student_id=student_id,
        plan_option_id=option.id,
        billing=billing.value,
        status=StudentPlanStatus.ACTIVE.value,
    )
    session.add(new_plan)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Student already has an active plan", {"student_id": student_id})
    session.refresh(new_plan)
    logger.info(
        "Student %s now on plan option %s (%s/week, %s)",
        student_id, option.id, option.weekly_classes, billing.value,
    )
    return new_plan
