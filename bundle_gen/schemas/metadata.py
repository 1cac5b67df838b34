"""Pydantic model for the ``bundle.ini`` metadata record."""

from __future__ import annotations

import configparser
import io
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .spec import BundleType

SECTION = "Bundle"
TAG_SEPARATOR = ";"


class BundleMetadata(BaseModel):
    name: str = Field(..., alias="Name")
    bundle_type: BundleType = Field(..., alias="Type")
    store_id: Optional[str] = Field(default=None, alias="StoreID")
    homebrew_id: Optional[str] = Field(default=None, alias="HomebrewID")
    exec_: Optional[str] = Field(default=None, alias="Exec")
    version: Optional[str] = Field(default=None, alias="Version")
    background: Optional[bool] = Field(default=None, alias="Background")
    prefer_xbox_mode: Optional[bool] = Field(default=None, alias="PreferXBoxMode")
    launcher: Optional[str] = Field(default=None, alias="Launcher")
    launcher_tags: List[str] = Field(default_factory=list, alias="LauncherTags")
    launcher_exec: Optional[str] = Field(default=None, alias="LauncherExec")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    def fields(self) -> Dict[str, List[str]]:
        """Return present fields keyed by their INI name, each as a list of values."""

        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        result: Dict[str, List[str]] = {}
        for key, value in payload.items():
            if isinstance(value, list):
                if value:
                    result[key] = [str(item) for item in value]
            elif isinstance(value, bool):
                result[key] = ["true" if value else "false"]
            else:
                result[key] = [str(value)]
        return result

    def to_ini(self) -> str:
        parser = _new_parser()
        parser.add_section(SECTION)
        for key, values in self.fields().items():
            parser.set(SECTION, key, TAG_SEPARATOR.join(values))
        buffer = io.StringIO()
        parser.write(buffer, space_around_delimiters=False)
        return buffer.getvalue()

    @classmethod
    def from_ini(cls, text: str) -> "BundleMetadata":
        parser = _new_parser()
        parser.read_string(text)
        if not parser.has_section(SECTION):
            raise ValueError(f"bundle metadata lacks a [{SECTION}] section")
        payload: Dict[str, object] = dict(parser.items(SECTION))
        tags = payload.get("LauncherTags")
        if isinstance(tags, str):
            payload["LauncherTags"] = [tag for tag in tags.split(TAG_SEPARATOR) if tag]
        return cls.model_validate(payload)


def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment]
    return parser
