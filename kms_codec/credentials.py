"""
AWS credential resolution.

Three mutually exclusive strategies, in fixed precedence order:
static access/secret keypair, named profile, boto3 default chain.
Resolution never touches the network; the boto3 session is only opened
when a transport asks for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import boto3

logger = logging.getLogger(__name__)


class CredentialStrategy(Enum):
    """How a CredentialHandle obtains its AWS credentials."""

    STATIC = "static"
    PROFILE = "profile"
    DEFAULT = "default"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CredentialHandle:
    """Opaque credential set owned by a master key provider."""

    strategy: CredentialStrategy
    access_key: Optional[str] = None
    secret_key: Optional[str] = field(default=None, repr=False)
    profile_name: Optional[str] = None

    def create_session(self, region: str) -> boto3.Session:
        """Open a boto3 session for this credential set in ``region``."""
        if self.strategy is CredentialStrategy.STATIC:
            return boto3.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=region,
            )
        if self.strategy is CredentialStrategy.PROFILE:
            return boto3.Session(profile_name=self.profile_name, region_name=region)
        return boto3.Session(region_name=region)


def resolve_credentials(
    access_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    profile_name: Optional[str] = None,
) -> CredentialHandle:
    """
    Pick the credential strategy for the given options.

    Static keys win over a profile, a profile wins over the default chain.
    Unused options are ignored.
    """
    if access_key and secret_key:
        return CredentialHandle(
            strategy=CredentialStrategy.STATIC,
            access_key=access_key,
            secret_key=secret_key,
        )

    if access_key or secret_key:
        logger.warning(
            "Ignoring incomplete static credentials: both access_key and secret_key are required"
        )

    if profile_name:
        return CredentialHandle(
            strategy=CredentialStrategy.PROFILE,
            profile_name=profile_name,
        )

    return CredentialHandle(strategy=CredentialStrategy.DEFAULT)
