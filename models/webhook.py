from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WebhookConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    enabled: bool = False
    headers: Dict[str, str] = Field(default_factory=dict)
    format: Literal["xml", "json"] = "xml"
    new_items_only: bool = Field(True, alias="newItemsOnly")
    custom_payload: Optional[str] = Field(None, alias="customPayload")

    @property
    def is_active(self) -> bool:
        return bool(self.enabled and self.url)


class WebhookMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    last_build_date: Optional[str] = Field(None, alias="lastBuildDate")
    feed_url: Optional[str] = Field(None, alias="feedUrl")
    site_url: Optional[str] = Field(None, alias="siteUrl")


class WebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    feed_id: str = Field(..., alias="feedId")
    feed_name: str = Field("", alias="feedName")
    feed_type: str = Field("web", alias="feedType")
    timestamp: str
    trigger_type: Literal["automatic", "manual"] = Field("automatic", alias="triggerType")
    item_count: int = Field(0, alias="itemCount")
    # RSS XML string, or the parsed feed dict for json payloads
    data: Union[str, Dict[str, Any]]
    metadata: Optional[WebhookMetadata] = None

    def to_wire(self) -> Dict[str, Any]:
        """camelCase JSON body, as receivers of the original service expect."""
        return self.model_dump(by_alias=True, exclude_none=True)
