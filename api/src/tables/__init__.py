from .base import Base
from .enrollment import Enrollment
from .payment import PaymentRecord
