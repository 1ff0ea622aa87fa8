"""
Certificate issuer — mutual-TLS material for buildkitd and its clients.

Issues one EC key pair (P-384) and two certificates over it:

    ca.pem    self-signed CA, 10 years, keyCertSign only
    cert.pem  server leaf, 1 year, digitalSignature + keyEncipherment,
              serverAuth, issuer = CA subject
    key.pem   the shared private key (EC PRIVATE KEY)

Issuing is pure: nothing is written anywhere. Either all three blobs
come back or ``CryptoFailure`` is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from cops.core.errors import CryptoFailure

logger = logging.getLogger(__name__)

CA_VALIDITY_YEARS = 10
LEAF_VALIDITY_YEARS = 1

_ORGANIZATION = "cops"
_CA_COMMON_NAME = "cops buildkit CA"
_LEAF_COMMON_NAME = "buildkitd"


@dataclass(frozen=True)
class CertificateBundle:
    """PEM-encoded CA certificate, leaf certificate and leaf key."""

    ca_pem: bytes
    cert_pem: bytes
    key_pem: bytes


def add_years(moment: datetime, years: int) -> datetime:
    """Calendar-year offset; Feb 29 rolls over to Mar 1 in common years."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, month=3, day=1)


def _key_usage(*, cert_sign: bool = False, signature: bool = False,
               encipherment: bool = False) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=signature,
        content_commitment=False,
        key_encipherment=encipherment,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=cert_sign,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def _distinct_serials() -> tuple[int, int]:
    ca_serial = x509.random_serial_number()
    leaf_serial = x509.random_serial_number()
    while leaf_serial == ca_serial:
        leaf_serial = x509.random_serial_number()
    return ca_serial, leaf_serial


def issue_certificate_bundle(
    hosts: list[str] | None = None,
    *,
    now: datetime | None = None,
) -> CertificateBundle:
    """Issue a fresh CA + leaf certificate pair sharing one EC key.

    Args:
        hosts: Optional DNS names for the leaf's subjectAltName.
        now: Issuance time (defaults to the current UTC time). Truncated
            to whole seconds, which is all X.509 can carry.

    Raises:
        CryptoFailure: If key generation, signing or encoding fails.
    """
    issued_at = (now or datetime.now(UTC)).replace(microsecond=0)

    try:
        key = ec.generate_private_key(ec.SECP384R1())
        ca_serial, leaf_serial = _distinct_serials()

        ca_name = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, _ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, _CA_COMMON_NAME),
        ])
        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(ca_name)
            .issuer_name(ca_name)
            .public_key(key.public_key())
            .serial_number(ca_serial)
            .not_valid_before(issued_at)
            .not_valid_after(add_years(issued_at, CA_VALIDITY_YEARS))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(_key_usage(cert_sign=True), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False,
            )
            .sign(key, hashes.SHA384())
        )

        leaf_name = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, _ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, _LEAF_COMMON_NAME),
        ])
        leaf_builder = (
            x509.CertificateBuilder()
            .subject_name(leaf_name)
            .issuer_name(ca_name)
            .public_key(key.public_key())
            .serial_number(leaf_serial)
            .not_valid_before(issued_at)
            .not_valid_after(add_years(issued_at, LEAF_VALIDITY_YEARS))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(_key_usage(signature=True, encipherment=True), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False,
            )
        )
        if hosts:
            leaf_builder = leaf_builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(h) for h in hosts]),
                critical=False,
            )
        leaf_cert = leaf_builder.sign(key, hashes.SHA384())

        bundle = CertificateBundle(
            ca_pem=ca_cert.public_bytes(serialization.Encoding.PEM),
            cert_pem=leaf_cert.public_bytes(serialization.Encoding.PEM),
            key_pem=key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoFailure(f"Certificate issuance failed: {e}") from e

    logger.debug(
        "Issued certificate bundle (ca serial %x, leaf serial %x, %d SANs)",
        ca_serial, leaf_serial, len(hosts or []),
    )
    return bundle
