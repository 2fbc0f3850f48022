from __future__ import annotations

import logging
import os
import ssl
import tempfile
import warnings
from typing import Any, Sequence, Union

from ..exceptions import CertificateConflictWarning, CertificateError

try:
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.serialization import pkcs12
except ImportError:  # Platform-specific: No cryptography installed.
    pkcs12 = None  # type: ignore[assignment]

log = logging.getLogger(__name__)

_TYPE_MATERIAL = Union[str, bytes, Sequence[Union[str, bytes]]]

_PEM_MARKER = "-----BEGIN"


def _is_pem(value: str | bytes) -> bool:
    if isinstance(value, bytes):
        return _PEM_MARKER.encode("ascii") in value
    return _PEM_MARKER in value


def _as_list(value: _TYPE_MATERIAL) -> list[str | bytes]:
    if isinstance(value, (str, bytes)):
        return [value]
    return list(value)


def _to_pem_text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii")
    return value


def _pem_or_path(
    value: _TYPE_MATERIAL, tmpdir: str, name: str
) -> str:
    """
    Return a file path for ``value``. File paths are used as they are; PEM
    content is written to a file inside ``tmpdir`` first.
    """
    items = _as_list(value)
    if not any(_is_pem(item) for item in items):
        if len(items) != 1:
            raise CertificateError(f"Only one {name} file path can be used")
        return os.fsdecode(items[0])
    path = os.path.join(tmpdir, name + ".pem")
    with open(path, "w") as f:
        f.write("\n".join(_to_pem_text(item) for item in items))
    return path


def _load_ca(context: ssl.SSLContext, ca: _TYPE_MATERIAL) -> None:
    for item in _as_list(ca):
        if _is_pem(item):
            context.load_verify_locations(cadata=_to_pem_text(item))
        elif isinstance(item, bytes) and not os.path.exists(os.fsdecode(item)):
            # DER encoded certificate
            context.load_verify_locations(cadata=item)
        elif os.path.isdir(item):
            context.load_verify_locations(capath=item)
        else:
            context.load_verify_locations(cafile=item)


def _password(passphrase: str | bytes | None) -> bytes | None:
    if passphrase is None:
        return None
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return passphrase


def _load_pfx(
    context: ssl.SSLContext,
    pfx: Any,
    passphrase: str | bytes | None,
    tmpdir: str,
) -> None:
    if pkcs12 is None:
        raise CertificateError(
            "Loading a PFX/PKCS#12 bundle requires the 'cryptography' package, "
            "install it with: pip install 'webreq[pfx]'"
        )
    if not isinstance(pfx, (bytes, bytearray, str)):
        pfx = list(pfx)
        if len(pfx) != 1:
            raise CertificateError("Only one PFX bundle can be used")
        pfx = pfx[0]
    if isinstance(pfx, str):
        with open(pfx, "rb") as f:
            data = f.read()
    else:
        data = bytes(pfx)

    try:
        key, cert, additional = pkcs12.load_key_and_certificates(
            data, _password(passphrase)
        )
    except ValueError as e:
        raise CertificateError(f"Unable to load PFX bundle: {e}") from e
    if key is None or cert is None:
        raise CertificateError("PFX bundle has no private key or certificate")

    cert_path = os.path.join(tmpdir, "pfx-cert.pem")
    key_path = os.path.join(tmpdir, "pfx-key.pem")
    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
        for extra in additional or ():
            f.write(extra.public_bytes(serialization.Encoding.PEM))
    with open(key_path, "wb") as f:
        f.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    context.load_cert_chain(cert_path, key_path)


def create_webreq_context(
    ca: _TYPE_MATERIAL | None = None,
    cert: _TYPE_MATERIAL | None = None,
    key: _TYPE_MATERIAL | None = None,
    passphrase: str | bytes | None = None,
    pfx: Any = None,
) -> "ssl.SSLContext":
    """
    Build a client :class:`ssl.SSLContext` from certificate material.

    Every argument accepts a file path or PEM content (``str`` or ``bytes``),
    or a list of those.

    :param ca:
        Certificates to trust instead of the system's default CA store.
    :param cert:
        Client certificate chain.
    :param key:
        Private key of ``cert``. May be omitted when ``cert`` contains it.
    :param passphrase:
        Password for an encrypted ``key`` and/or for ``pfx``.
    :param pfx:
        PKCS#12 bundle (bytes, or path to the file) holding a private key and
        its certificate chain. Needs the optional ``cryptography`` package.

    Nothing is validated up front: when both ``pfx`` and ``cert`` are given,
    ``cert``/``key`` are loaded first and the PFX chain replaces them, with a
    :class:`~webreq.exceptions.CertificateConflictWarning`.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True

    if ca is not None:
        _load_ca(context, ca)
    else:
        context.load_default_certs()

    if pfx is not None and cert is not None:
        warnings.warn(
            "Both 'pfx' and 'cert' were given, the PFX certificate chain is used",
            CertificateConflictWarning,
        )

    if cert is not None or pfx is not None:
        with tempfile.TemporaryDirectory(prefix="webreq-") as tmpdir:
            if cert is not None:
                cert_path = _pem_or_path(cert, tmpdir, "cert")
                key_path = _pem_or_path(key, tmpdir, "key") if key is not None else None
                try:
                    context.load_cert_chain(
                        cert_path, key_path, password=_password(passphrase)
                    )
                except (OSError, ssl.SSLError) as e:
                    raise CertificateError(
                        f"Unable to load client certificate: {e}"
                    ) from e
            if pfx is not None:
                _load_pfx(context, pfx, passphrase, tmpdir)

    # Enable logging of TLS session keys via defacto standard environment variable
    # 'SSLKEYLOGFILE', if the feature is available (Python 3.8+). Skip empty values.
    if hasattr(context, "keylog_filename"):
        sslkeylogfile = os.environ.get("SSLKEYLOGFILE")
        if sslkeylogfile:
            context.keylog_filename = sslkeylogfile

    log.debug(
        "Created TLS context (custom ca: %s, client cert: %s)",
        ca is not None,
        cert is not None or pfx is not None,
    )
    return context
