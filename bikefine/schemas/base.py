import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def strip_html(value: Optional[str]) -> Optional[str]:
    """Format HTML message to plain text"""
    if value:
        soup = BeautifulSoup(value, 'html.parser')
        plain_text = soup.get_text(" ", strip=True)
        return re.sub(r'\s+', ' ', plain_text).strip()
    return value
