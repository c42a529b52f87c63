import ssl
from typing import Literal

from hypersock.env import Env, load_env

VerifyMode = Literal["REQUIRED", "OPTIONAL", "NONE"]


def _to_verify_mode(verify: VerifyMode) -> ssl.VerifyMode:
    match verify:
        case "REQUIRED":
            return ssl.VerifyMode.CERT_REQUIRED

        case "OPTIONAL":
            return ssl.VerifyMode.CERT_OPTIONAL

        case "NONE":
            return ssl.VerifyMode.CERT_NONE

        case _:
            raise ValueError(f"Unknown verify mode - {verify!r}")


def create_client_ssl_context(
    cafile: str | None = None,
    certfile: str | None = None,
    keyfile: str | None = None,
    verify: VerifyMode | None = None,
    check_hostname: bool | None = None,
    env: Env | None = None,
) -> ssl.SSLContext:
    if verify is None:
        verify = (env or load_env(Env)).HYPERSOCK_VERIFY_SSL_CERT

    verify_mode = _to_verify_mode(verify)

    ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ssl_ctx.minimum_version = ssl.TLSVersion.TLSv1_2

    if certfile:
        ssl_ctx.load_cert_chain(certfile, keyfile=keyfile)

    if cafile:
        ssl_ctx.load_verify_locations(cafile=cafile)

    else:
        ssl_ctx.load_default_certs(ssl.Purpose.SERVER_AUTH)

    if check_hostname is None:
        check_hostname = verify_mode == ssl.VerifyMode.CERT_REQUIRED

    ssl_ctx.check_hostname = check_hostname
    ssl_ctx.verify_mode = verify_mode

    return ssl_ctx


def create_server_ssl_context(
    certfile: str,
    keyfile: str | None = None,
    cafile: str | None = None,
    verify: VerifyMode | None = None,
) -> ssl.SSLContext:
    """
    Client certificates are only requested when ``verify`` says so, and
    are checked against ``cafile``.
    """
    ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ssl_ctx.options |= ssl.OP_SINGLE_DH_USE
    ssl_ctx.options |= ssl.OP_SINGLE_ECDH_USE
    ssl_ctx.load_cert_chain(certfile, keyfile=keyfile)

    if cafile:
        ssl_ctx.load_verify_locations(cafile=cafile)

    ssl_ctx.check_hostname = False
    ssl_ctx.verify_mode = _to_verify_mode(verify or "NONE")

    return ssl_ctx
