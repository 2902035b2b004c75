from fastapi import Request
from services.payment_service import PaymentService


def get_payment_service(request: Request) -> PaymentService:
    """The service instance built in the app lifespan."""
    return request.app.state.payment_service
