"""
Built-in transaction categories and lookup helpers.

Default categories ship with every new ledger. Users can rename them or
change their icon, but only custom categories can be deleted.
"""

from typing import Iterable, Optional

from assetflow.models.ledger import Category, CategoryType


# Icons a category may be assigned. Names are symbolic; the UI maps them.
ASSIGNABLE_ICONS = (
    "Shapes", "Gift", "UtensilsCrossed", "Home", "Car", "Heart",
    "GraduationCap", "Film", "Plane", "Briefcase", "Receipt", "Bus",
    "Train", "ShoppingBag", "Shirt", "Coffee", "Pizza", "Bone", "Laptop",
    "Gamepad2", "Music", "BookOpen", "TrendingUp", "PiggyBank", "DollarSign",
)

DEFAULT_ICON = "Shapes"

_DEFAULTS = [
    # Expenses
    ("food", "Food & Dining", "UtensilsCrossed", CategoryType.EXPENSE),
    ("transport", "Transportation", "Car", CategoryType.EXPENSE),
    ("housing", "Housing", "Home", CategoryType.EXPENSE),
    ("health", "Health", "Heart", CategoryType.EXPENSE),
    ("education", "Education", "GraduationCap", CategoryType.EXPENSE),
    ("entertainment", "Entertainment", "Film", CategoryType.EXPENSE),
    ("travel", "Travel", "Plane", CategoryType.EXPENSE),
    ("shopping", "Shopping", "Gift", CategoryType.EXPENSE),
    ("bills", "Bills & Utilities", "Receipt", CategoryType.EXPENSE),
    ("other_expense", "Other Expense", "Shapes", CategoryType.EXPENSE),
    # Income
    ("salary", "Salary", "Briefcase", CategoryType.INCOME),
    ("investment", "Investments", "TrendingUp", CategoryType.INCOME),
    ("savings", "Savings", "PiggyBank", CategoryType.INCOME),
    ("other_income", "Other Income", "DollarSign", CategoryType.INCOME),
]


def default_categories() -> list[Category]:
    """Fresh copies of the built-in categories."""
    return [
        Category(id=cid, name=name, icon=icon, type=ctype, is_default=True)
        for cid, name, icon, ctype in _DEFAULTS
    ]


def is_assignable_icon(name: str) -> bool:
    return name in ASSIGNABLE_ICONS


def get_category_by_id(
    category_id: Optional[str],
    categories: Iterable[Category],
) -> Optional[Category]:
    if not category_id:
        return None
    return next((c for c in categories if c.id == category_id), None)


def get_categories_by_type(
    categories: Iterable[Category],
    category_type: CategoryType,
) -> list[Category]:
    return [c for c in categories if c.type == category_type]
