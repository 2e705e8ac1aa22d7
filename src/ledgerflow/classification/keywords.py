"""
Keyword tables for the classifier.

All lookups are case-insensitive whole-word matches, so "hr" does not fire
inside "three" and "rent" does not fire inside "current".
"""

from typing import Optional

from ..schemas.categories import Category, Frequency
from ..schemas.normalize import contains_keyword

C = Category

CATEGORY_KEYWORDS: dict[Category, tuple[str, ...]] = {
    # Personnel & HR
    C.HIRING: (
        "hiring", "recruitment", "recruiter", "recruiting", "candidate", "interview", "hr",
        "job board", "linkedin recruiter", "indeed", "naukri", "hiring platform",
        "talent acquisition",
    ),
    C.SALARIES: (
        "salary", "salaries", "payroll", "wage", "wages", "compensation", "bonus", "incentive",
        "employee payout", "staff salary", "sal payout", "emp salary",
    ),
    C.BENEFITS: (
        "pf", "provident fund", "esic", "esi", "gratuity", "health insurance",
        "medical insurance", "group insurance", "employee benefit", "mediclaim", "wellness",
    ),
    C.TRAINING: (
        "training", "course", "certification", "udemy", "coursera", "workshop",
        "skill development", "learning", "conference fee", "seminar", "webinar registration",
    ),
    # Sales & Marketing
    C.MARKETING: (
        "marketing", "campaign", "promotion", "promo", "content", "copywriting", "blog",
        "brand", "branding", "pr", "public relations", "hubspot", "mailchimp", "sendgrid",
    ),
    C.SALES: (
        "sales commission", "sales tool", "crm", "salesforce", "pipedrive", "zoho crm",
        "business development", "lead generation", "outreach",
    ),
    C.ADVERTISING: (
        "google ads", "facebook ads", "instagram", "linkedin ads", "twitter ads",
        "social media ad", "ppc", "cpc", "cpm", "adwords", "meta ads", "meta business",
        "display ads", "bing ads", "youtube ads", "tiktok ads", "amazon ads",
    ),
    C.EVENTS: (
        "event", "conference", "exhibition", "booth", "trade show", "sponsorship",
        "meetup", "networking event", "corporate event",
    ),
    # Technology
    C.SAAS: (
        "saas", "subscription", "slack", "notion", "airtable", "trello", "asana", "jira",
        "confluence", "monday", "zoom", "teams", "calendly", "figma", "canva", "adobe",
        "github", "gitlab", "bitbucket", "dropbox", "box", "lastpass", "1password", "okta",
        "auth0", "intercom", "zendesk", "freshdesk", "typeform", "surveymonkey", "miro", "loom",
    ),
    C.CLOUD: (
        "aws", "amazon web services", "azure", "microsoft azure", "gcp", "google cloud",
        "digitalocean", "linode", "vultr", "heroku", "netlify", "vercel", "cloudflare",
        "s3", "ec2", "rds", "lambda", "cloudfront", "route53", "firebase", "supabase",
        "mongodb atlas", "redis cloud", "elastic cloud",
    ),
    C.IT_INFRASTRUCTURE: (
        "infrastructure", "datacenter", "colocation", "bandwidth", "cdn", "fastly",
        "network", "router", "switch", "firewall", "server hosting",
    ),
    C.SOFTWARE: (
        "software license", "perpetual license", "microsoft office", "windows license",
        "antivirus", "norton", "mcafee", "development tool",
    ),
    C.HARDWARE: (
        "laptop", "computer", "macbook", "dell", "hp computer", "lenovo", "monitor", "keyboard",
        "mouse", "webcam", "headphone", "printer", "phone", "iphone", "android device",
    ),
    C.SECURITY: (
        "security", "cybersecurity", "penetration test", "security audit", "vpn", "nordvpn",
        "expressvpn", "crowdstrike", "sophos", "palo alto", "firewall service",
    ),
    # Operations
    C.RENT: (
        "rent", "lease", "office rent", "coworking", "workspace", "wework", "regus", "awfis",
        "property", "premises", "space rental",
    ),
    C.UTILITIES: (
        "utility", "utilities", "electric", "electricity", "water", "internet", "wifi",
        "broadband", "phone bill", "mobile bill", "telecom", "airtel", "jio", "vodafone",
        "bsnl", "act fibernet",
    ),
    C.OFFICE_SUPPLIES: (
        "stationery", "supplies", "pantry", "snacks", "coffee", "tea", "office supplies",
        "paper", "ink", "toner", "cleaning supplies",
    ),
    C.EQUIPMENT: (
        "furniture", "desk", "chair", "ergonomic", "office equipment", "table",
        "filing cabinet", "whiteboard", "projector",
    ),
    C.MAINTENANCE: (
        "maintenance", "repair", "amc", "annual maintenance", "facility", "housekeeping",
        "pest control", "deep cleaning",
    ),
    # Professional Services
    C.LEGAL: (
        "legal", "lawyer", "attorney", "law firm", "litigation", "contract review",
        "trademark", "patent", "copyright", "legal counsel", "advocate",
    ),
    C.ACCOUNTING: (
        "accounting", "ca", "chartered accountant", "bookkeeping", "audit", "auditor",
        "tax filing", "gst filing", "compliance", "quickbooks", "xero", "zoho books", "tally",
    ),
    C.CONSULTING: (
        "consulting", "consultant", "advisory", "strategy", "business consultant",
        "management consulting", "mckinsey", "bcg", "bain",
    ),
    C.PROFESSIONAL_SERVICES: (
        "freelance", "contractor", "professional fee", "designer", "developer",
        "agency", "outsource", "upwork", "fiverr", "toptal",
    ),
    # Travel & Entertainment
    C.TRAVEL: (
        "flight", "airline", "indigo", "spicejet", "air india", "vistara",
        "hotel", "oyo", "taj", "marriott", "airbnb", "cab", "uber", "ola", "taxi",
        "travel", "transport", "bus", "train", "irctc", "makemytrip", "cleartrip",
    ),
    C.MEALS: (
        "meal", "lunch", "dinner", "breakfast", "food", "restaurant", "swiggy", "zomato",
        "team lunch", "client dinner", "catering", "order food",
    ),
    C.ENTERTAINMENT: (
        "entertainment", "team outing", "party", "celebration", "offsite",
        "client entertainment", "recreational", "tickets", "movie",
    ),
    # Finance
    C.TAXES: (
        "tax", "gst", "tds", "income tax", "professional tax", "govt fee", "government",
        "challan", "filing fee", "registration fee", "stamp duty", "mca fee",
    ),
    C.INSURANCE: (
        "insurance", "business insurance", "liability insurance", "asset insurance",
        "coverage", "premium", "policy",
    ),
    C.BANK_FEES: (
        "bank charge", "bank charges", "account fee", "bank fee", "wire transfer",
        "rtgs charge", "neft charge", "imps charge", "cheque book", "bank transaction",
        "account maintenance",
    ),
    C.PAYMENT_PROCESSING: (
        "razorpay", "stripe", "paypal", "paytm business", "payment gateway",
        "transaction fee", "processing fee", "merchant fee", "pg charge",
    ),
    C.INTEREST_CHARGES: (
        "interest", "loan interest", "credit card interest", "emi", "finance charge",
        "overdraft interest", "working capital interest",
    ),
    C.RESEARCH_DEVELOPMENT: (
        "r&d", "research", "development", "innovation", "prototype", "experiment",
        "research grant", "lab", "testing",
    ),
    C.CUSTOMER_SUPPORT: (
        "customer support", "helpdesk", "crisp", "support tool", "ticketing",
        "call center", "chat support",
    ),
    C.SUBSCRIPTIONS: (
        "membership", "annual subscription", "magazine", "news subscription",
        "club membership", "professional membership",
    ),
    C.REFUNDS: (
        "refund", "return", "chargeback", "reversal", "credit note", "customer refund",
    ),
    C.DEPRECIATION: (
        "depreciation", "amortization", "asset depreciation", "book depreciation",
    ),
    C.BAD_DEBTS: (
        "bad debt", "write off", "write-off", "uncollectible", "provision for doubtful",
    ),
    C.G_A: (
        "general", "admin", "administrative", "miscellaneous", "misc", "office",
        "incorporation", "license", "permit",
    ),
    C.OTHER: (),
}

# Most specific categories first
CATEGORY_PRIORITY: tuple[Category, ...] = (
    C.SALARIES,
    C.HIRING,
    C.BENEFITS,
    C.TRAINING,
    C.ADVERTISING,
    C.CLOUD,
    C.SAAS,
    C.IT_INFRASTRUCTURE,
    C.SECURITY,
    C.HARDWARE,
    C.SOFTWARE,
    C.PAYMENT_PROCESSING,
    C.BANK_FEES,
    C.TAXES,
    C.INSURANCE,
    C.INTEREST_CHARGES,
    C.LEGAL,
    C.ACCOUNTING,
    C.CONSULTING,
    C.PROFESSIONAL_SERVICES,
    C.RENT,
    C.UTILITIES,
    C.OFFICE_SUPPLIES,
    C.EQUIPMENT,
    C.MAINTENANCE,
    C.TRAVEL,
    C.MEALS,
    C.ENTERTAINMENT,
    C.EVENTS,
    C.MARKETING,
    C.SALES,
    C.RESEARCH_DEVELOPMENT,
    C.CUSTOMER_SUPPORT,
    C.SUBSCRIPTIONS,
    C.REFUNDS,
    C.DEPRECIATION,
    C.BAD_DEBTS,
    C.G_A,
)

# Explicit one-time keyword → category (None: general table, else G&A).
# Multi-word keywords come before their single-word suffixes.
ONE_TIME_KEYWORDS: tuple[tuple[str, Optional[Category]], ...] = (
    ("security deposit", C.RENT),
    ("license fee", C.SOFTWARE),
    ("one-time", None),
    ("ad-hoc", None),
    ("laptop", C.HARDWARE),
    ("computer", C.HARDWARE),
    ("macbook", C.HARDWARE),
    ("pc", C.HARDWARE),
    ("monitor", C.HARDWARE),
    ("keyboard", C.HARDWARE),
    ("mouse", C.HARDWARE),
    ("furniture", C.EQUIPMENT),
    ("desk", C.EQUIPMENT),
    ("chair", C.EQUIPMENT),
    ("table", C.EQUIPMENT),
    ("equipment", C.EQUIPMENT),
    ("setup", C.IT_INFRASTRUCTURE),
    ("installation", C.IT_INFRASTRUCTURE),
    ("initial", C.HIRING),
    ("onboard", C.HIRING),
    ("onboarding", C.HIRING),
    ("deposit", C.G_A),
    ("advance", C.G_A),
    ("purchase", None),
    ("buy", None),
    ("bought", None),
    ("acquisition", None),
    ("procure", None),
    ("repair", C.MAINTENANCE),
    ("fix", C.MAINTENANCE),
    ("maintenance", C.MAINTENANCE),
    ("conference", C.EVENTS),
    ("event", C.EVENTS),
    ("seminar", C.EVENTS),
    ("training", C.TRAINING),
    ("course", C.TRAINING),
    ("bonus", C.SALARIES),
    ("adhoc", None),
    ("special", None),
    ("registration", C.LEGAL),
    ("incorporation", C.LEGAL),
)

# Explicit recurring keyword → (frequency, default category)
RECURRING_KEYWORDS: tuple[tuple[str, Frequency, Optional[Category]], ...] = (
    ("subscription", Frequency.MONTHLY, C.SUBSCRIPTIONS),
    ("monthly", Frequency.MONTHLY, None),
    ("annual", Frequency.YEARLY, None),
    ("yearly", Frequency.YEARLY, None),
    ("quarterly", Frequency.QUARTERLY, None),
    ("rent", Frequency.MONTHLY, C.RENT),
    ("salary", Frequency.MONTHLY, C.SALARIES),
    ("payroll", Frequency.MONTHLY, C.SALARIES),
    ("retainer", Frequency.MONTHLY, C.PROFESSIONAL_SERVICES),
    ("saas", Frequency.MONTHLY, C.SAAS),
    ("membership", Frequency.MONTHLY, C.SUBSCRIPTIONS),
    ("recurring", Frequency.MONTHLY, None),
)

TRANSFER_KEYWORDS: tuple[str, ...] = ("self transfer", "own account", "sweep")

SUBSCRIPTION_VENDORS: tuple[str, ...] = (
    "netflix", "spotify", "amazon prime", "prime video",
    "slack", "zoom", "github", "gitlab", "jira",
    "aws", "azure", "google cloud", "digitalocean", "heroku",
    "dropbox", "google workspace", "microsoft 365", "office 365",
    "adobe", "canva", "figma", "notion", "trello",
    "salesforce", "hubspot", "mailchimp", "sendgrid",
    "subscription", "membership", "saas",
)


def match_category_keyword(text: str) -> Optional[tuple[Category, str]]:
    """First category (by priority) with a keyword in the text."""
    if not text:
        return None
    for category in CATEGORY_PRIORITY:
        for keyword in CATEGORY_KEYWORDS[category]:
            if contains_keyword(text, keyword):
                return category, keyword
    return None


def find_one_time_keyword(text: str) -> Optional[tuple[str, Optional[Category]]]:
    for keyword, category in ONE_TIME_KEYWORDS:
        if contains_keyword(text, keyword):
            return keyword, category
    return None


def find_recurring_keyword(
    text: str,
) -> Optional[tuple[str, Frequency, Optional[Category]]]:
    for keyword, frequency, category in RECURRING_KEYWORDS:
        if contains_keyword(text, keyword):
            return keyword, frequency, category
    return None


def is_transfer(text: str) -> bool:
    """Movements between the owner's own accounts."""
    return any(contains_keyword(text, k) for k in TRANSFER_KEYWORDS)


def has_subscription_keyword(text: str) -> bool:
    return any(contains_keyword(text, k) for k in SUBSCRIPTION_VENDORS)
