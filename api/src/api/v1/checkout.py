from typing import Annotated
from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from services.checkout import CheckoutService, CheckoutInfo, get_checkout_service


router = APIRouter()


class CheckoutBody(BaseModel):
    user_id: int = Field(gt=0)
    course_id: int = Field(gt=0)
    amount: int = Field(gt=0, description='In the smallest currency unit')
    email: str = Field(min_length=3)
    name: str = Field(min_length=1)
    course_title: str | None = None


class EnrollmentStatus(BaseModel):
    is_enrolled: bool


@router.post(
    path='/checkout',
    description=
    'Creates a pending payment and a Xendit invoice for it<br>'
    'The user has to pay on the returned `invoice_url`, access is granted once Xendit notifies about the payment'
)
async def checkout(
    body: Annotated[CheckoutBody, Body()],
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)]
) -> CheckoutInfo:
    return await checkout_service.checkout(
        user_id=body.user_id,
        course_id=body.course_id,
        amount=body.amount,
        email=body.email,
        name=body.name,
        course_title=body.course_title
    )


@router.get(
    path='/enrollments/status',
    description='Whether the user has an active or completed enrollment in the course'
)
async def enrollment_status(
    user_id: Annotated[int, Query()],
    course_id: Annotated[int, Query()],
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)]
) -> EnrollmentStatus:
    return EnrollmentStatus(is_enrolled=await checkout_service.is_enrolled(user_id, course_id))
