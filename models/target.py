from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.webhook import WebhookConfig


def _coerce_flag(v: Any) -> Any:
    # Form posts deliver checkboxes as "on"/"true"
    if isinstance(v, str):
        return v.strip().lower() in ("on", "true", "1", "yes")
    return v


class DrillStep(BaseModel):
    """One hop of a drill chain. Index 0 runs first."""

    model_config = ConfigDict(populate_by_name=True)

    selector: str
    attribute: Optional[str] = None
    is_relative: bool = Field(False, alias="isRelative")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    strip_html: bool = Field(False, alias="stripHtml")

    @field_validator("is_relative", "strip_html", mode="before")
    @classmethod
    def coerce_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("attribute", "base_url", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Target(BaseModel):
    """
    Declarative description of how to extract and normalize one field.

    Resolution switches on which optional fields are populated:
    a non-empty ``drill_chain`` wins over ``selector``/``attribute``;
    an ``iterator`` scopes the selector to the i-th iterator match
    instead of the current item.
    """

    model_config = ConfigDict(populate_by_name=True)

    selector: str = ""
    attribute: Optional[str] = None
    strip_html: bool = Field(False, alias="stripHtml")
    title_case: bool = Field(False, alias="titleCase")
    is_relative: bool = Field(False, alias="isRelative")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    iterator: Optional[str] = None
    date_format: Optional[str] = Field(None, alias="dateFormat")
    custom_date_format: Optional[str] = Field(None, alias="customDateFormat")
    guid_is_permalink: Optional[bool] = Field(None, alias="guidIsPermaLink")
    drill_chain: List[DrillStep] = Field(default_factory=list, alias="drillChain")

    @field_validator("strip_html", "title_case", "is_relative", mode="before")
    @classmethod
    def coerce_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("attribute", "base_url", "iterator", "date_format", "custom_date_format", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def explicit_date_format(self) -> Optional[str]:
        """The form stores "other" and puts the real pattern in customDateFormat."""
        if self.date_format == "other":
            return self.custom_date_format
        return self.date_format or self.custom_date_format

    @property
    def has_drill_chain(self) -> bool:
        return bool(self.drill_chain)


class ArticleSchema(BaseModel):
    """One item's shape plus feed-level targets."""

    model_config = ConfigDict(populate_by_name=True)

    iterator: Target
    title: Optional[Target] = None
    description: Optional[Target] = None
    link: Optional[Target] = None
    date: Optional[Target] = None
    author: Optional[Target] = None
    enclosure: Optional[Target] = None
    guid: Optional[Target] = None

    # Feed-level targets, resolved once against the whole document
    feed_title: Optional[Target] = Field(None, alias="feedTitle")
    feed_description: Optional[Target] = Field(None, alias="feedDescription")
    feed_language: Optional[Target] = Field(None, alias="feedLanguage")
    feed_image: Optional[Target] = Field(None, alias="feedImage")

    @field_validator("iterator", mode="before")
    @classmethod
    def iterator_from_string(cls, v):
        if isinstance(v, str):
            return {"selector": v}
        return v

    def item_fields(self) -> Dict[str, Target]:
        fields = {
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "date": self.date,
            "author": self.author,
            "enclosure": self.enclosure,
            "guid": self.guid,
        }
        return {name: target for name, target in fields.items() if target is not None}


class ApiMapping(BaseModel):
    """Dotted paths into a JSON API response."""

    model_config = ConfigDict(populate_by_name=True)

    items: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    guid: Optional[str] = None
    enclosure: Optional[str] = None
    categories: Optional[str] = None
    feed_title: Optional[str] = Field(None, alias="feedTitle")
    feed_description: Optional[str] = Field(None, alias="feedDescription")


class FlareSolverrConfig(BaseModel):
    enabled: bool = False
    server_url: Optional[str] = Field(None, alias="serverUrl")
    timeout: Optional[int] = None  # Milliseconds

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_active(self) -> bool:
        return bool(self.enabled and self.server_url)


class Cookie(BaseModel):
    name: str
    value: str


class ApiConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    base_url: Optional[str] = Field(None, alias="baseUrl")
    method: str = "GET"
    route: Optional[str] = None
    params: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    with_credentials: bool = Field(False, alias="withCredentials")
    description: Optional[str] = None
    language: Optional[str] = None
    advanced: bool = False
    cookies: List[Cookie] = Field(default_factory=list)

    @field_validator("advanced", "with_credentials", mode="before")
    @classmethod
    def coerce_flags(cls, v):
        return _coerce_flag(v)

    @property
    def request_url(self) -> Optional[str]:
        if not self.base_url:
            return None
        if not self.route:
            return self.base_url
        return self.base_url.rstrip("/") + "/" + self.route.lstrip("/")


class FeedConfig(BaseModel):
    """A complete feed definition as the scheduler hands it to the pipeline."""

    model_config = ConfigDict(populate_by_name=True)

    feed_id: str = Field(..., alias="feedId")
    feed_name: Optional[str] = Field(None, alias="feedName")
    feed_type: Literal["web", "api"] = Field("web", alias="feedType")
    config: ApiConfig = Field(default_factory=ApiConfig)
    article: Optional[ArticleSchema] = None
    api_mapping: Optional[ApiMapping] = Field(None, alias="apiMapping")
    overrides: Dict[str, Target] = Field(default_factory=dict)
    reverse: bool = False
    strict: bool = False
    flaresolverr: Optional[FlareSolverrConfig] = None
    webhook: Optional[WebhookConfig] = None

    @property
    def display_name(self) -> str:
        return self.feed_name or self.feed_id
