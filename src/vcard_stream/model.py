from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .buffer import SpillBuffer


@dataclass
class Email:
    address: str
    label: str | None = None
    pref: int | None = None
    position: int = 0


@dataclass
class Phone:
    number: str
    label: str | None = None
    pref: int | None = None
    position: int = 0


@dataclass
class Url:
    url: str
    label: str | None = None
    pref: int | None = None
    position: int = 0


@dataclass
class InstantMessage:
    uri: str
    label: str | None = None
    pref: int | None = None
    position: int = 0


@dataclass
class Address:
    po_box: str | None = None
    extended: str | None = None
    street: str | None = None
    locality: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    label: str | None = None
    pref: int | None = None
    position: int = 0

    @property
    def parts(self) -> list[str | None]:
        return [
            self.po_box,
            self.extended,
            self.street,
            self.locality,
            self.region,
            self.postal_code,
            self.country,
        ]


@dataclass
class CustomProperty:
    """Any property without a dedicated field, kept as read.

    ``value`` is text, raw bytes (a decoded 2.1 BASE64 payload) or, for values
    above the large-value threshold, an open ``SpillBuffer`` the caller must
    close.
    """

    name: str
    value: str | bytes | SpillBuffer
    params: str | None = None
    position: int = 0


def _wrap(kind: type, items: list[Any]) -> list[Any]:
    return [item if isinstance(item, kind) else kind(**item) for item in items]


@dataclass
class Card:
    version: str | None = None
    uid: str | None = None
    fn: str | None = None
    family_name: str | None = None
    given_name: str | None = None
    additional_names: str | None = None
    honorific_prefix: str | None = None
    honorific_suffix: str | None = None
    kind: str | None = None           # vCard 4.0 KIND: individual|org|group|location
    nickname: str | None = None
    bday: str | None = None
    anniversary: str | None = None
    gender: str | None = None
    note: str | None = None
    prodid: str | None = None
    emails: list[Email] = field(default_factory=list)
    phones: list[Phone] = field(default_factory=list)
    addresses: list[Address] = field(default_factory=list)
    urls: list[Url] = field(default_factory=list)
    ims: list[InstantMessage] = field(default_factory=list)
    custom_properties: list[CustomProperty] = field(default_factory=list)

    def __post_init__(self) -> None:
        # plain dicts are accepted for collection entries
        self.emails = _wrap(Email, self.emails)
        self.phones = _wrap(Phone, self.phones)
        self.addresses = _wrap(Address, self.addresses)
        self.urls = _wrap(Url, self.urls)
        self.ims = _wrap(InstantMessage, self.ims)
        self.custom_properties = _wrap(CustomProperty, self.custom_properties)

    @property
    def name_parts(self) -> list[str | None]:
        return [
            self.family_name,
            self.given_name,
            self.additional_names,
            self.honorific_prefix,
            self.honorific_suffix,
        ]

    def to_vcf(self, version: str | None = None) -> str:
        from .serializer import serialize

        return serialize(self, version)
