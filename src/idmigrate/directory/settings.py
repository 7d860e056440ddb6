"""
Directory connection and search settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from idmigrate.exceptions import ConfigurationError

ATTR_OBJECT_CLASS = "objectClass"
ATTR_OBJECT_GUID = "objectGUID"
ATTR_ENTRY_UUID = "entryUUID"


@dataclass(frozen=True)
class DirectorySettings:
    """
    Settings for one directory integration.

    Attributes:
        servers: Host names tried in order
        port: Port number (389 for plain/StartTLS, 636 for LDAPS)
        tls: Connect with LDAPS
        start_tls: Upgrade a plain connection with StartTLS
        ca_certificate: Path to a PEM CA bundle; system store if empty
        connection_timeout: Seconds allowed to open a connection
        service_account_dn: DN used to bind
        service_account_password: Password used to bind
        user_search_base: Subtree searched when looking a DN up by stable ID
        user_object_class: Object class of user entries
        user_login_attribute: Login name attribute
        user_name_attribute: Display name attribute
        user_member_attribute: Group membership attribute
        stable_id_attributes: Stable identifier attributes, in order of preference
    """

    servers: tuple[str, ...] = ()
    port: int = 389
    tls: bool = False
    start_tls: bool = False
    ca_certificate: str = ""
    connection_timeout: float = 5.0
    service_account_dn: str = ""
    service_account_password: str = field(default="", repr=False)
    user_search_base: str = ""
    user_object_class: str = "inetOrgPerson"
    user_login_attribute: str = "uid"
    user_name_attribute: str = "cn"
    user_member_attribute: str = "memberOf"
    stable_id_attributes: tuple[str, ...] = (ATTR_OBJECT_GUID, ATTR_ENTRY_UUID)

    def __post_init__(self) -> None:
        if self.tls and self.start_tls:
            raise ConfigurationError("tls and start_tls are mutually exclusive")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid directory port: {self.port}")
        if not self.stable_id_attributes:
            raise ConfigurationError("At least one stable identifier attribute is required")

    @property
    def search_attributes(self) -> list[str]:
        """Attributes requested for every user lookup, without duplicates."""
        attributes = [
            ATTR_OBJECT_CLASS,
            *self.stable_id_attributes,
            self.user_member_attribute,
            self.user_login_attribute,
            self.user_name_attribute,
        ]
        return list(dict.fromkeys(attributes))

    @property
    def user_filter(self) -> str:
        return f"({ATTR_OBJECT_CLASS}={self.user_object_class})"
