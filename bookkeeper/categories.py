# bookkeeper/categories.py
# Single source of truth for category names, expense buckets and keyword rules

from typing import Dict, List, Optional, Tuple

# ===== EXPENSE BUCKETS =====
# Expense rows store the bucket key in their ``category`` column.

EXPENSE_BUCKETS: Dict[str, str] = {
    "rent": "租金",
    "salary": "薪資",
    "utilities": "水電",
    "marketing": "行銷",
    "office": "辦公",
    "travel": "交通差旅",
    "insurance": "保險",
    "meals": "餐飲",
    "other": "其他",
}

INCOME_CATEGORIES: Dict[str, str] = {
    "sales": "銷售",
    "consulting": "諮詢",
    "rental": "租金",
    "interest": "利息",
    "other": "其他",
}

# ===== BUDGET CATEGORIES =====

DEFAULT_BUDGET_CATEGORIES: List[dict] = [
    {"name": "租金費用", "icon": "🏢", "color": "#f5222d", "is_income": False, "sort_order": 1},
    {"name": "薪資費用", "icon": "👥", "color": "#fa541c", "is_income": False, "sort_order": 2},
    {"name": "水電費", "icon": "⚡", "color": "#fa8c16", "is_income": False, "sort_order": 3},
    {"name": "行銷費用", "icon": "📢", "color": "#faad14", "is_income": False, "sort_order": 4},
    {"name": "辦公用品", "icon": "📝", "color": "#a0d911", "is_income": False, "sort_order": 5},
    {"name": "差旅費", "icon": "✈️", "color": "#52c41a", "is_income": False, "sort_order": 6},
    {"name": "保險費", "icon": "🛡️", "color": "#13c2c2", "is_income": False, "sort_order": 7},
    {"name": "其他支出", "icon": "📦", "color": "#1890ff", "is_income": False, "sort_order": 8},
    {"name": "營業收入", "icon": "💰", "color": "#722ed1", "is_income": True, "sort_order": 1},
    {"name": "其他收入", "icon": "🎁", "color": "#eb2f96", "is_income": True, "sort_order": 2},
]

BUDGET_CATEGORY_BUCKETS: Dict[str, str] = {
    "租金費用": "rent",
    "薪資費用": "salary",
    "水電費": "utilities",
    "行銷費用": "marketing",
    "辦公用品": "office",
    "差旅費": "travel",
    "保險費": "insurance",
    "其他支出": "other",
}

INCOME_BUDGET_CATEGORIES = frozenset(
    c["name"] for c in DEFAULT_BUDGET_CATEGORIES if c["is_income"]
)

# ===== KEYWORD RULES =====
# Order matters: the first bucket with a matching keyword wins.

EXPENSE_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("office", ["辦公", "文具", "用品", "設備", "紙張", "印表機", "office", "stationery"]),
    ("rent", ["租金", "房租", "租賃", "rent"]),
    ("salary", ["薪資", "工資", "薪水", "人事", "salary", "payroll"]),
    ("utilities", ["水電", "電費", "水費", "瓦斯", "電信", "utility"]),
    ("travel", ["交通", "油費", "加油", "停車", "計程車", "高鐵", "機票", "差旅", "taxi", "fuel"]),
    ("meals", ["餐", "飯", "午餐", "晚餐", "咖啡", "飲料", "restaurant", "coffee"]),
    ("marketing", ["廣告", "行銷", "宣傳", "推廣", "設計", "marketing", "ads"]),
    ("insurance", ["保險", "保費", "insurance"]),
]

INCOME_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("sales", ["銷售", "售", "收入", "營收", "服務費", "sale"]),
    ("consulting", ["諮詢", "顧問", "咨詢", "建議", "consult"]),
    ("rental", ["租金", "房租", "租賃", "rent"]),
    ("interest", ["利息", "股息", "投資收益", "interest", "dividend"]),
]


def budget_bucket(category_name: str) -> str:
    """Expense bucket key that a budget category tracks.

    Names outside the default table are treated as bucket keys themselves so
    that budgets can be created directly against ``office``, ``rent`` and so on.
    """
    return BUDGET_CATEGORY_BUCKETS.get(category_name, category_name)


def is_income_budget(category_name: str) -> bool:
    return category_name in INCOME_BUDGET_CATEGORIES


def match_keywords(text: str, ledger: str = "expense") -> Optional[str]:
    """Return the first category whose keyword appears in ``text``."""
    if not text:
        return None
    haystack = text.lower()
    rules = INCOME_KEYWORDS if ledger == "income" else EXPENSE_KEYWORDS
    for category, keywords in rules:
        for keyword in keywords:
            if keyword.lower() in haystack:
                return category
    return None


def category_label(key: str, ledger: str = "expense") -> str:
    table = INCOME_CATEGORIES if ledger == "income" else EXPENSE_BUCKETS
    return table.get(key, key)


def default_category_lists() -> Dict[str, List[str]]:
    """Default category lists stored in system settings."""
    return {
        "default_income_categories": list(INCOME_CATEGORIES.keys()),
        "default_expense_categories": list(EXPENSE_BUCKETS.keys()),
    }
