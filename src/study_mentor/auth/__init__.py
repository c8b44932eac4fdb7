from .session import (
    AuthClient,
    Identity,
    IdentityToolkitClient,
    LocalAuthClient,
    SessionBootstrapper,
)

__all__ = [
    "AuthClient",
    "Identity",
    "IdentityToolkitClient",
    "LocalAuthClient",
    "SessionBootstrapper",
]
