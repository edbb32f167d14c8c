"""
Package identifiers and their incentive columns.

A member's role is the package they activated with. Referral incentives are
paid from the upline's incentive table; the column is chosen by the package
of the member who was just activated.
"""

BASIC_PACKAGE = "Basic_Merchant_Package"
PREMIUM_PACKAGE = "Premium_Merchant_Package"
ELITE_PACKAGE = "Elite_Distributor_Package"
ELITE_PLUS_PACKAGE = "Elite_Plus_Distributor_Package"

# referred package -> incentive_programs column
PACKAGE_INCENTIVE_COLUMNS = {
    PREMIUM_PACKAGE: "premium_incentive",
    ELITE_PACKAGE: "elite_incentive",
    ELITE_PLUS_PACKAGE: "elite_plus_incentive",
}
DEFAULT_INCENTIVE_COLUMN = "basic_incentive"


def get_incentive_column(referred_package: str) -> str:
    """Incentive column paid for a referred package; unknown packages earn the basic rate."""
    return PACKAGE_INCENTIVE_COLUMNS.get(referred_package, DEFAULT_INCENTIVE_COLUMN)


def format_package_name(package: str) -> str:
    """Display form of a package identifier ("Elite_Distributor_Package" -> "Elite Distributor Package")."""
    if not package:
        return ""
    return package.replace("_", " ")
