"""
Category space (SSOT).

The category set is closed. Every category carries explicit metadata:
display name, group, default frequency, and whether it is a typically
recurring bucket. No other module should compare category strings directly.
"""

from dataclasses import dataclass
from enum import Enum


class Frequency(str, Enum):
    """Recurrence frequency of an expense."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Category(str, Enum):
    """Closed set of transaction categories."""

    # Personnel
    HIRING = "Hiring"
    SALARIES = "Salaries"
    BENEFITS = "Benefits"
    TRAINING = "Training"
    # Sales & marketing
    MARKETING = "Marketing"
    SALES = "Sales"
    ADVERTISING = "Advertising"
    EVENTS = "Events"
    # Technology
    SAAS = "SaaS"
    CLOUD = "Cloud"
    IT_INFRASTRUCTURE = "ITInfrastructure"
    SOFTWARE = "Software"
    HARDWARE = "Hardware"
    SECURITY = "Security"
    # Operations
    RENT = "Rent"
    UTILITIES = "Utilities"
    OFFICE_SUPPLIES = "OfficeSupplies"
    EQUIPMENT = "Equipment"
    MAINTENANCE = "Maintenance"
    # Professional services
    LEGAL = "Legal"
    ACCOUNTING = "Accounting"
    CONSULTING = "Consulting"
    PROFESSIONAL_SERVICES = "ProfessionalServices"
    # Travel & entertainment
    TRAVEL = "Travel"
    MEALS = "Meals"
    ENTERTAINMENT = "Entertainment"
    # Finance
    TAXES = "Taxes"
    INSURANCE = "Insurance"
    BANK_FEES = "BankFees"
    PAYMENT_PROCESSING = "PaymentProcessing"
    INTEREST_CHARGES = "InterestCharges"
    # Other
    RESEARCH_DEVELOPMENT = "ResearchDevelopment"
    CUSTOMER_SUPPORT = "CustomerSupport"
    SUBSCRIPTIONS = "Subscriptions"
    REFUNDS = "Refunds"
    DEPRECIATION = "Depreciation"
    BAD_DEBTS = "BadDebts"
    G_A = "G_A"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        """Resolve a category from its value or member name (case-insensitive).

        Raises:
            ValueError: If the value names no category
        """
        if isinstance(value, Category):
            return value
        text = value.strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown category: {value!r}")

    @property
    def info(self) -> "CategoryInfo":
        return CATEGORY_INFO[self]

    @property
    def display_name(self) -> str:
        return self.info.display_name

    @property
    def group(self) -> str:
        return self.info.group

    @property
    def default_frequency(self) -> Frequency | None:
        return self.info.default_frequency

    @property
    def is_recurring_hint(self) -> bool:
        return self.info.recurring_hint


@dataclass(frozen=True)
class CategoryInfo:
    """Static metadata for a category."""

    display_name: str
    group: str
    default_frequency: Frequency | None = None
    # Typically recurring bucket (used by the weak default signals)
    recurring_hint: bool = False


_M = Frequency.MONTHLY
_Y = Frequency.YEARLY

CATEGORY_INFO: dict[Category, CategoryInfo] = {
    Category.HIRING: CategoryInfo("Hiring & Recruitment", "Personnel", _M, True),
    Category.SALARIES: CategoryInfo("Salaries & Wages", "Personnel", _M, True),
    Category.BENEFITS: CategoryInfo("Employee Benefits", "Personnel", _M),
    Category.TRAINING: CategoryInfo("Training & Development", "Personnel"),
    Category.MARKETING: CategoryInfo("Marketing", "Sales & Marketing"),
    Category.SALES: CategoryInfo("Sales", "Sales & Marketing"),
    Category.ADVERTISING: CategoryInfo("Advertising", "Sales & Marketing", _M),
    Category.EVENTS: CategoryInfo("Events & Conferences", "Sales & Marketing"),
    Category.SAAS: CategoryInfo("SaaS Tools", "Technology", _M, True),
    Category.CLOUD: CategoryInfo("Cloud Services", "Technology", _M, True),
    Category.IT_INFRASTRUCTURE: CategoryInfo("IT Infrastructure", "Technology"),
    Category.SOFTWARE: CategoryInfo("Software", "Technology"),
    Category.HARDWARE: CategoryInfo("Hardware", "Technology"),
    Category.SECURITY: CategoryInfo("Security", "Technology", _Y),
    Category.RENT: CategoryInfo("Rent & Facilities", "Operations", _M),
    Category.UTILITIES: CategoryInfo("Utilities", "Operations", _M),
    Category.OFFICE_SUPPLIES: CategoryInfo("Office Supplies", "Operations"),
    Category.EQUIPMENT: CategoryInfo("Equipment & Furniture", "Operations"),
    Category.MAINTENANCE: CategoryInfo("Maintenance", "Operations"),
    Category.LEGAL: CategoryInfo("Legal", "Professional Services"),
    Category.ACCOUNTING: CategoryInfo("Accounting & Audit", "Professional Services", _M),
    Category.CONSULTING: CategoryInfo("Consulting", "Professional Services"),
    Category.PROFESSIONAL_SERVICES: CategoryInfo(
        "Professional Services", "Professional Services"
    ),
    Category.TRAVEL: CategoryInfo("Travel", "Travel & Entertainment"),
    Category.MEALS: CategoryInfo("Meals & Food", "Travel & Entertainment"),
    Category.ENTERTAINMENT: CategoryInfo("Entertainment", "Travel & Entertainment"),
    Category.TAXES: CategoryInfo("Taxes & Duties", "Finance", Frequency.QUARTERLY),
    Category.INSURANCE: CategoryInfo("Insurance", "Finance", _Y),
    Category.BANK_FEES: CategoryInfo("Bank Fees", "Finance", _M),
    Category.PAYMENT_PROCESSING: CategoryInfo("Payment Processing", "Finance", _M),
    Category.INTEREST_CHARGES: CategoryInfo("Interest & Finance", "Finance", _M),
    Category.RESEARCH_DEVELOPMENT: CategoryInfo("R&D", "Other"),
    Category.CUSTOMER_SUPPORT: CategoryInfo("Customer Support", "Other", _M),
    Category.SUBSCRIPTIONS: CategoryInfo("Subscriptions", "Other", _M),
    Category.REFUNDS: CategoryInfo("Refunds & Returns", "Other"),
    Category.DEPRECIATION: CategoryInfo("Depreciation", "Other"),
    Category.BAD_DEBTS: CategoryInfo("Bad Debts", "Other"),
    Category.G_A: CategoryInfo("General & Admin", "Other"),
    Category.OTHER: CategoryInfo("Other", "Other"),
}


def recurring_categories() -> list[Category]:
    """Categories flagged as typically recurring buckets."""
    return [c for c in Category if c.is_recurring_hint]
