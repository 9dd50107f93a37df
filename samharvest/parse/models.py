"""Data models for harvested opportunities.

The source is loosely typed: nested objects sometimes arrive as bare strings
and lists as lone values. Every field accepts whatever shape is sent and keeps
what it can.
"""
import logging
from typing import Annotated, Any, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from samharvest.parse.normalize import coerce_str, normalize_date

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> Any:
    """Wrap a lone value in a list and drop null entries."""
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [item for item in value if item is not None]


def _as_links(value: Any) -> Any:
    """List of link strings; link objects contribute their ``url``."""
    items = _as_list(value)
    if items is None:
        return None
    links = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("url") or item.get("href")
        if item is not None:
            links.append(item)
    return links


def _as_object(value: Any) -> Any:
    """Keep an object, treat anything else as absent."""
    return value if isinstance(value, (dict, BaseModel)) else None


def _as_objects(value: Any) -> Any:
    """List of objects; non-object entries are dropped."""
    items = _as_list(value)
    if items is None:
        return None
    return [item for item in items if isinstance(item, (dict, BaseModel))]


def _as_place_value(value: Any) -> Any:
    """A ``{code, name}`` pair; a bare scalar is taken as the name."""
    if value is None or isinstance(value, (dict, BaseModel)):
        return value
    if isinstance(value, (list, tuple)):
        return None
    return {"name": coerce_str(value)}


OptStr = Annotated[Optional[str], BeforeValidator(coerce_str)]
OptDate = Annotated[Optional[str], BeforeValidator(normalize_date)]
LinkList = Annotated[Optional[list[OptStr]], BeforeValidator(_as_links)]


def alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


class SourceModel(BaseModel):
    """Base for models parsed from source JSON: every field optional, extras ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Awardee(SourceModel):
    name: OptStr = None
    duns: OptStr = None
    uei_sam: OptStr = alias("uei_sam", "ueiSAM", "ueiSam")


class Award(SourceModel):
    amount: OptStr = None
    date: OptDate = None
    number: OptStr = None
    awardee: Annotated[Optional[Awardee], BeforeValidator(_as_object)] = None


class Contact(SourceModel):
    """Point of contact owned by an opportunity."""

    contact_type: OptStr = alias("contact_type", "type")
    full_name: OptStr = alias("full_name", "fullName", "fullname")
    email: OptStr = None
    phone: OptStr = None
    title: OptStr = None


class PlaceValue(SourceModel):
    code: OptStr = None
    name: OptStr = None


PlaceField = Annotated[Optional[PlaceValue], BeforeValidator(_as_place_value)]


class PlaceOfPerformance(SourceModel):
    state: PlaceField = None
    city: PlaceField = None
    country: PlaceField = None
    zip: OptStr = None


class Opportunity(SourceModel):
    """One contract opportunity as returned by the search API."""

    notice_id: OptStr = alias("notice_id", "noticeId")
    title: OptStr = None
    solicitation_number: OptStr = alias("solicitation_number", "solicitationNumber")
    department: OptStr = None
    sub_tier: OptStr = alias("sub_tier", "subTier")
    office: OptStr = None
    full_parent_path_name: OptStr = alias("full_parent_path_name", "fullParentPathName")
    organization_type: OptStr = alias("organization_type", "organizationType")
    opp_type: OptStr = alias("opp_type", "type")
    base_type: OptStr = alias("base_type", "baseType")
    posted_date: OptDate = alias("posted_date", "postedDate")
    response_deadline: OptDate = alias("response_deadline", "responseDeadLine", "responseDeadline")
    archive_date: OptDate = alias("archive_date", "archiveDate")
    naics_code: OptStr = alias("naics_code", "naicsCode")
    classification_code: OptStr = alias("classification_code", "classificationCode")
    set_aside: OptStr = alias("set_aside", "typeOfSetAside", "setAside")
    set_aside_description: OptStr = alias(
        "set_aside_description", "typeOfSetAsideDescription", "setAsideDescription"
    )
    description: OptStr = None
    ui_link: OptStr = alias("ui_link", "uiLink")
    active: OptStr = None
    resource_links: LinkList = alias("resource_links", "resourceLinks")
    award: Annotated[Optional[Award], BeforeValidator(_as_object)] = None
    point_of_contact: Annotated[Optional[list[Contact]], BeforeValidator(_as_objects)] = alias(
        "point_of_contact", "pointOfContact"
    )
    place_of_performance: Annotated[Optional[PlaceOfPerformance], BeforeValidator(_as_object)] = alias(
        "place_of_performance", "placeOfPerformance"
    )
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, description="Source JSON")

    @classmethod
    def from_source(cls, item: dict[str, Any]) -> "Opportunity":
        """Build an opportunity from one source item, keeping the raw payload."""
        opportunity = cls.model_validate(item)
        opportunity.raw = item
        return opportunity

    @property
    def contacts(self) -> list[Contact]:
        return list(self.point_of_contact or [])

    @property
    def is_active(self) -> bool:
        return (self.active or "").strip().lower() == "yes"
