"""
Importer profiles for the data-migration screens.

A profile binds a remote function name to the operator-facing help text and
the header detection mode used for that kind of file. Every profile shares the
same batch engine; only the remote function and the column help differ.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.domain.imports.normalizer import HEADER_MODES


@dataclass(frozen=True)
class ImporterProfile:
    name: str  # Remote function name, also used as the URL slug
    title: str
    description: str
    required_columns: Tuple[str, ...] = ()
    optional_columns: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()
    header_mode: str = "markers"
    placeholder: str = ""

    def __post_init__(self):
        if self.header_mode not in HEADER_MODES:
            raise ValueError(f"Profile '{self.name}' has unknown header mode '{self.header_mode}'")


_PROFILES: Dict[str, ImporterProfile] = {}


def register_profile(profile: ImporterProfile) -> ImporterProfile:
    if profile.name in _PROFILES:
        raise ValueError(f"Importer profile '{profile.name}' is already registered")
    _PROFILES[profile.name] = profile
    return profile


def get_profile(name: str) -> Optional[ImporterProfile]:
    return _PROFILES.get(name)


def list_profiles() -> List[ImporterProfile]:
    return list(_PROFILES.values())


register_profile(ImporterProfile(
    name="import-user-migrations",
    title="User data import",
    description="Import user accounts from the legacy system",
    required_columns=("email",),
    optional_columns=(
        "display_name", "last_name", "first_name", "points_balance", "phone_number",
        "postal_code", "prefecture", "city", "address_line1", "address_line2", "legacy_user_id",
    ),
    notes=("legacy_user_id is needed to link transaction history",),
    placeholder="email,display_name,points_balance,legacy_user_id...",
))

register_profile(ImporterProfile(
    name="import-transactions",
    title="Transaction history import",
    description="Import play history from the legacy system",
    required_columns=("user_email", "total_spent_points"),
    optional_columns=("gacha_title", "play_count", "created_at", "status"),
    placeholder="user_email,gacha_title,play_count,total_spent_points,created_at...",
))

register_profile(ImporterProfile(
    name="import-inventory",
    title="Shipment / conversion import",
    description="Import pack_cards.csv rows as pending shipments or point conversions",
    notes=(
        "Only rows with user_id > 0 are processed",
        "status=1 becomes a shipment, status=0 a point refund",
        "Users are linked through user_migrations.legacy_user_id; import users first",
    ),
    placeholder=(
        "id,pack_id,card_id,user_id,num,price,sale_price,stock_sale_price,redemption_point,"
        "show_list,hit_count,order,attention_mode,action_type,status,created,modified"
    ),
))

register_profile(ImporterProfile(
    name="import-daily-analytics",
    title="Daily sales import",
    description="Import daily revenue and gross profit figures",
    notes=(
        "date: YYYYMMDD (e.g. 20250202)",
        "payment_amount: revenue",
        "profit: gross profit",
        "points_used: points spent",
    ),
    # No email/user column, so the marker sniff would treat the header as data.
    header_mode="typed",
    placeholder="id,date(YYYYMMDD),payment_amount,profit,points_used,status",
))

register_profile(ImporterProfile(
    name="import-shipping-history",
    title="Shipping history import",
    description="Import completed shipments",
    required_columns=("user_email",),
    optional_columns=("card_name", "tracking_number", "status", "shipped_at"),
    placeholder="user_email,card_name,tracking_number,status,shipped_at...",
))

register_profile(ImporterProfile(
    name="import-point-conversions",
    title="Point conversion import",
    description="Import cards that were converted back into points",
    notes=("Users are linked through user_migrations.legacy_user_id",),
))

register_profile(ImporterProfile(
    name="import-pending-shipments",
    title="Pending shipment import",
    description="Import shipments that have not been sent yet",
    notes=("Rows marked as deleted are skipped by the processor",),
))
