"""Database models"""
from bookstream.models.user import User, UserRole, SubscriptionTier, SubscriptionStatus
from bookstream.models.book import Book
from bookstream.models.signup_attempt import SignupAttempt
from bookstream.models.free_trial_record import FreeTrialRecord
from bookstream.models.loan import Loan, LoanStatus, LoanType
from bookstream.models.device import Device

__all__ = [
    "User", "UserRole", "SubscriptionTier", "SubscriptionStatus",
    "Book", "SignupAttempt", "FreeTrialRecord",
    "Loan", "LoanStatus", "LoanType", "Device",
]
