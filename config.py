# -*- coding: utf-8 -*-
"""
LendPulse - System configuration
Portfolio analytics for multi-tenant lending operations

All thresholds used by the delinquency and reporting rules live here so every
view reads the same numbers.
"""

import os
from decimal import Decimal

# Base paths
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOGS_DIR = os.path.join(BASE_DIR, 'logs')

# =============================================================================
# APPLICATION
# =============================================================================
APP_CONFIG = {
    'VERSION': '1.4.0',
    'APP_NAME': 'LendPulse',
    'APP_SUBTITLE': 'Loan Portfolio Analytics & Delinquency Classification',
    'COMPANY': 'LendPulse Systems',
}


# =============================================================================
# DATABASE / FLASK
# =============================================================================
class Config:
    """Base Flask configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'lendpulse-dev-secret-key'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{os.path.join(BASE_DIR, "lendpulse.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Parallel view computation for dashboard requests (1 = inline)
    ANALYTICS_FAN_OUT_WORKERS = int(os.environ.get('ANALYTICS_FAN_OUT_WORKERS', 4))

    LOG_TO_FILE = os.environ.get('LOG_TO_FILE', '1') == '1'


class TestingConfig(Config):
    """In-memory configuration for the test-suite"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    ANALYTICS_FAN_OUT_WORKERS = 1
    LOG_TO_FILE = False


# =============================================================================
# ANALYTICS ENGINE
# =============================================================================
ANALYTICS_CONFIG = {
    # Only loans in this status enter analytics
    'DISBURSED_STATUS': 'disbursed',

    # Delinquency rules
    'NPL_DAYS_THRESHOLD': 90,
    'ARREARS_STATUSES': ('overdue', 'partial'),

    # Bucket for missing dimension values
    'UNKNOWN_KEY': 'Unknown',

    # Range selectors
    'DAILY_SELECTORS': ('week', 'month'),
    'MONTHLY_SELECTORS': ('quarter', '6months', 'year', 'all'),
    'CUSTOM_SELECTOR': 'custom',
    'CUSTOM_DAILY_MAX_DAYS': 31,
    'ALL_FALLBACK_MONTHS': 12,
    'DAILY_COLLECTION_DAYS': 30,

    # Ranking
    'DEFAULT_DIMENSION_SORT': ('disbursed', 'desc'),
    'DELINQUENCY_SORTS': {
        'amount': ('overdue_amount', 'desc'),
        'percentage': ('turnover_percentage', 'asc'),
        'days': ('days_overdue', 'desc'),
    },
    'TOP_N': 10,

    # Demographic brackets (inclusive bounds, None = open ended)
    'AGE_BRACKETS': (
        ('18-25', 18, 25),
        ('26-35', 26, 35),
        ('36-45', 36, 45),
        ('46-55', 46, 55),
        ('56-65', 56, 65),
        ('66+', 66, None),
    ),

    # Recorded gender values -> display label; anything else is 'Other'
    'GENDERS': {
        'male': 'Male',
        'm': 'Male',
        'female': 'Female',
        'f': 'Female',
    },

    # Customer loyalty tiers by number of disbursed loans
    'LOYALTY_TIERS': (
        ('First Time (1 loan)', 1, 1),
        ('Repeat (2-4 loans)', 2, 4),
        ('Frequent (5-8 loans)', 5, 8),
        ('Super (8+ loans)', 9, None),
    ),

    # Payer types recorded on payments
    'PAYER_TYPES': {
        'customer': 'Customer',
        'guarantor': 'Guarantor',
        'next-of-kin': 'Next of Kin',
        'third-party': 'Third Party',
        'other': 'Other',
    },

    # Rounding
    'RATE_PLACES': 1,
    'MONEY_PLACES': 0,

    # Ledger reads
    'LOAN_ID_CHUNK_SIZE': 500,
}

# Named dimensions available to the dimension views
DIMENSIONS = (
    'branch',
    'region',
    'product',
    'county',
    'marital_status',
    'age_bracket',
    'loyalty_tier',
    'gender',
    'business_type',
)

# =============================================================================
# LOCALISATION
# =============================================================================
LOCALE_CONFIG = {
    'currency_symbol': 'Ksh',
    'currency_code': 'KES',
    'timezone': 'Africa/Nairobi',
}

# =============================================================================
# LOGGING
# =============================================================================
LOGGING_CONFIG = {
    'level': os.environ.get('LOG_LEVEL', 'INFO'),
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'date_format': '%Y-%m-%d %H:%M:%S',
    'file': os.path.join(LOGS_DIR, 'lendpulse.log'),
    'max_bytes': 10485760,  # 10 MB
    'backup_count': 5,
}


def format_currency(amount, include_symbol: bool = True) -> str:
    """Format an amount in whole shillings"""
    if isinstance(amount, (int, float)):
        amount = Decimal(str(amount))

    formatted = f"{amount:,.0f}"

    if include_symbol:
        return f"{LOCALE_CONFIG['currency_symbol']} {formatted}"
    return formatted


def format_currency_compact(amount) -> str:
    """Short form used on stat cards: Ksh 1.2M, Ksh 45.0K, Ksh 900"""
    if amount is None:
        return f"{LOCALE_CONFIG['currency_symbol']} 0"

    value = Decimal(str(amount))
    symbol = LOCALE_CONFIG['currency_symbol']

    if value >= 1000000:
        return f"{symbol} {value / 1000000:.1f}M"
    if value >= 1000:
        return f"{symbol} {value / 1000:.1f}K"
    return f"{symbol} {value:,.0f}"


def format_percent(value) -> str:
    """Format a percentage with one decimal place"""
    if isinstance(value, (int, float)):
        value = Decimal(str(value))
    return f"{value:.1f}%"
