"""
Bound directory connections.

``open_connection`` turns ``DirectorySettings`` into an ldap3 connection
bound with the service account. One connection is opened per run and
reused serially for every lookup.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Protocol, runtime_checkable

import ldap3
from ldap3.core.exceptions import LDAPException

from idmigrate.directory.settings import DirectorySettings
from idmigrate.exceptions import AuthenticationFailedError, ConfigurationError

logger = logging.getLogger(__name__)


@runtime_checkable
class DirectoryConnection(Protocol):
    """
    The part of ``ldap3.Connection`` the resolver relies on.

    ``search`` returns True on success and leaves the entries in
    ``response`` and the outcome in ``result``.
    """

    result: Any
    response: Any

    def search(
        self,
        search_base: str,
        search_filter: str,
        search_scope: str = ...,
        dereference_aliases: str = ...,
        attributes: Any = None,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
    ) -> bool: ...


def _create_tls(settings: DirectorySettings) -> ldap3.Tls | None:
    if not (settings.tls or settings.start_tls):
        return None
    if settings.ca_certificate:
        return ldap3.Tls(validate=ssl.CERT_REQUIRED, ca_certs_file=settings.ca_certificate)
    return ldap3.Tls(validate=ssl.CERT_REQUIRED)


def open_connection(settings: DirectorySettings) -> ldap3.Connection:
    """
    Open a connection to the directory and bind with the service account.

    Args:
        settings: Directory settings

    Returns:
        A bound ldap3 connection

    Raises:
        ConfigurationError: If no server is configured
        AuthenticationFailedError: If connecting, StartTLS or the bind fails
    """
    if not settings.servers:
        raise ConfigurationError("No directory servers configured")

    tls = _create_tls(settings)
    servers = [
        ldap3.Server(
            host,
            port=settings.port,
            use_ssl=settings.tls,
            tls=tls,
            get_info=ldap3.NONE,
            connect_timeout=settings.connection_timeout,
        )
        for host in settings.servers
    ]
    pool = ldap3.ServerPool(servers, ldap3.FIRST, active=1, exhaust=True)

    connection = ldap3.Connection(
        pool,
        user=settings.service_account_dn or None,
        password=settings.service_account_password or None,
        auto_bind=ldap3.AUTO_BIND_NONE,
        raise_exceptions=False,
        receive_timeout=settings.connection_timeout,
    )

    try:
        connection.open()
        if settings.start_tls and not connection.start_tls():
            raise AuthenticationFailedError("StartTLS negotiation failed")
        if not connection.bind():
            logger.error(
                f"Service account bind failed for {settings.service_account_dn}",
                extra={"bind_dn": settings.service_account_dn},
            )
            raise AuthenticationFailedError("Error binding service account user connection")
    except LDAPException as e:
        raise AuthenticationFailedError("Error connecting to the directory") from e

    logger.info(
        f"Connected to directory as {settings.service_account_dn}",
        extra={"servers": list(settings.servers), "bind_dn": settings.service_account_dn},
    )
    return connection


__all__ = [
    "DirectoryConnection",
    "open_connection",
]
