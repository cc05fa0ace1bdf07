"""Country codes served by the story store."""

from __future__ import annotations

from enum import Enum


class CountryCode(str, Enum):
    TR = "tr"
    DE = "de"
    US = "us"
    UK = "uk"
    FR = "fr"
    ES = "es"
    IT = "it"
    RU = "ru"

    @property
    def language(self) -> str:
        return COUNTRY_LANGUAGES[self]

    @classmethod
    def parse(cls, value: "str | CountryCode") -> "CountryCode":
        if isinstance(value, CountryCode):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported country code: {value!r}") from None


COUNTRY_LANGUAGES = {
    CountryCode.TR: "tr",
    CountryCode.DE: "de",
    CountryCode.US: "en",
    CountryCode.UK: "en",
    CountryCode.FR: "fr",
    CountryCode.ES: "es",
    CountryCode.IT: "it",
    CountryCode.RU: "ru",
}
