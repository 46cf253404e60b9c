"""
DNS record and zone validation

Pure functions: no I/O, deterministic. Errors block a write, warnings are
advisory and are handed back to the caller alongside the success payload.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..models.dns import RECORD_TYPES, ZONE_TYPES

MAX_TTL = 2147483647
MAX_UINT32 = 4294967295
DEFAULT_RECORD_TTL = 300

_NAME_CHARS = re.compile(r'^[a-zA-Z0-9@._-]+$')
_IPV4 = re.compile(r'^([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})$')
_DOMAIN = re.compile(
    r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*$'
)
_SPF_TERMINATOR = re.compile(r'\s+(~all|[+-]all)$')
_CAA = re.compile(r'^([0-9]+)\s+(issue|issuewild|iodef)\s+"([^"]*)"$')
_UNSIGNED = re.compile(r'^[0-9]+$')

_LINK_LOCAL_V6 = ipaddress.IPv6Network('fe80::/10')
_UNIQUE_LOCAL_V6 = ipaddress.IPv6Network('fc00::/7')


@dataclass
class ValidationResult:
    """Outcome of a validation pass"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _in_range(value: Any, low: int, high: int) -> bool:
    return _is_int(value) and low <= value <= high


class DNSValidator:
    """Validation rules for names, TTLs and per-type record values"""

    @staticmethod
    def validate_record_name(name: Optional[str], record_type: str) -> ValidationResult:
        result = ValidationResult()

        if not name or not name.strip():
            result.errors.append('Record name cannot be empty')
            return result

        clean_name = name.strip()

        if not _NAME_CHARS.match(clean_name):
            result.errors.append(
                'Record name contains invalid characters. Use only letters, numbers, @, ., _, and -'
            )

        if len(clean_name) > 63:
            result.errors.append('Record name too long (max 63 characters)')

        if record_type == 'CNAME' and clean_name == '@':
            result.errors.append('CNAME records cannot be created for the zone apex (@)')

        if record_type == 'SRV' and not clean_name.startswith('_'):
            result.warnings.append('SRV record names typically start with underscore (e.g., _sip._tcp)')

        if '..' in clean_name:
            result.errors.append('Record name cannot contain consecutive dots')

        if clean_name.startswith('-') or clean_name.endswith('-'):
            result.errors.append('Record name cannot start or end with hyphen')

        return result

    @staticmethod
    def validate_ttl(ttl: Any) -> ValidationResult:
        result = ValidationResult()

        if not _in_range(ttl, 1, MAX_TTL):
            result.errors.append('TTL must be an integer between 1 and 2,147,483,647')
            return result

        if ttl < 60:
            result.warnings.append('Very low TTL (< 60s) may cause high DNS query load')
        elif ttl > 86400:
            result.warnings.append('High TTL (> 24h) may delay propagation of changes')

        return result

    @staticmethod
    def validate_ipv4(ip: str) -> ValidationResult:
        result = ValidationResult()

        match = _IPV4.match(ip)
        if not match:
            result.errors.append('Invalid IPv4 address format')
            return result

        octets = [int(part) for part in match.groups()]
        for position, octet in enumerate(octets, start=1):
            if octet > 255:
                result.errors.append(f'Invalid octet {octet} at position {position} (must be 0-255)')

        first = octets[0]
        if first == 0:
            result.errors.append('IPv4 address cannot start with 0 (reserved)')

        if result.errors:
            return result

        if first == 127:
            result.warnings.append('IPv4 address in loopback range (127.x.x.x)')
        elif first >= 224:
            result.warnings.append('IPv4 address in multicast/reserved range (224+)')
        elif first == 10 or (first == 172 and 16 <= octets[1] <= 31) or (first == 192 and octets[1] == 168):
            result.warnings.append('IPv4 address in private range (RFC 1918)')

        return result

    @staticmethod
    def validate_ipv6(ip: str) -> ValidationResult:
        result = ValidationResult()

        try:
            address = ipaddress.IPv6Address(ip)
        except ValueError:
            result.errors.append('Invalid IPv6 address format')
            return result

        if address.is_loopback:
            result.warnings.append('IPv6 loopback address')
        elif address in _LINK_LOCAL_V6:
            result.warnings.append('IPv6 link-local address')
        elif address in _UNIQUE_LOCAL_V6:
            result.warnings.append('IPv6 unique local address (private)')

        return result

    @staticmethod
    def validate_domain_name(domain: str, context: str = 'Domain name') -> ValidationResult:
        result = ValidationResult()

        if len(domain) > 253:
            result.errors.append(f'{context} too long (max 253 characters)')

        clean_domain = domain[:-1] if domain.endswith('.') else domain

        if not _DOMAIN.match(clean_domain):
            result.errors.append(f'{context} contains invalid characters or format')

        for label in clean_domain.split('.'):
            if len(label) > 63:
                result.errors.append(f'{context} label "{label}" too long (max 63 characters)')

        return result

    @classmethod
    def validate_mx_record(cls, value: str, priority: Any) -> ValidationResult:
        result = ValidationResult()

        if not _in_range(priority, 0, 65535):
            result.errors.append('MX record requires priority (0-65535)')

        return result.extend(cls.validate_domain_name(value, 'MX target'))

    @classmethod
    def validate_srv_record(cls, value: str, priority: Any, weight: Any, port: Any) -> ValidationResult:
        result = ValidationResult()

        if not _in_range(priority, 0, 65535):
            result.errors.append('SRV record requires priority (0-65535)')
        if not _in_range(weight, 0, 65535):
            result.errors.append('SRV record requires weight (0-65535)')
        if not _in_range(port, 1, 65535):
            result.errors.append('SRV record requires port (1-65535)')

        return result.extend(cls.validate_domain_name(value, 'SRV target'))

    @staticmethod
    def validate_txt_record(value: str) -> ValidationResult:
        result = ValidationResult()

        if len(value) > 255:
            result.errors.append('TXT record value too long (max 255 characters)')

        if value.startswith('v=spf1') and not _SPF_TERMINATOR.search(value):
            result.warnings.append('SPF record should end with ~all, +all, or -all')

        if value.startswith('v=DKIM1') and ('k=' not in value or 'p=' not in value):
            result.warnings.append('DKIM record should contain k= and p= parameters')

        if value.startswith('v=DMARC1') and 'p=' not in value:
            result.warnings.append('DMARC record should contain p= policy')

        return result

    @staticmethod
    def validate_caa_record(value: str) -> ValidationResult:
        result = ValidationResult()

        match = _CAA.match(value)
        if not match:
            result.errors.append('CAA record format: flags tag "value" (e.g., 0 issue "letsencrypt.org")')
            return result

        flags, tag, tag_value = match.groups()
        if int(flags) > 255:
            result.errors.append('CAA flags must be 0-255')

        if tag == 'iodef' and '@' not in tag_value and not tag_value.startswith('http'):
            result.warnings.append('CAA iodef value should be an email address or URL')

        return result

    @classmethod
    def validate_soa_record(cls, value: str) -> ValidationResult:
        result = ValidationResult()

        parts = value.split()
        if len(parts) != 7:
            result.errors.append('SOA record format: mname rname serial refresh retry expire minimum')
            return result

        mname, rname, *numbers = parts
        result.errors.extend(cls.validate_domain_name(mname, 'SOA master name').errors)
        result.errors.extend(
            cls.validate_domain_name(rname.replace('@', '.'), 'SOA responsible name').errors
        )

        for field_name, raw in zip(('serial', 'refresh', 'retry', 'expire', 'minimum'), numbers):
            if not _UNSIGNED.match(raw) or int(raw) > MAX_UINT32:
                result.errors.append(f'SOA {field_name} must be a valid 32-bit unsigned integer')

        return result

    @classmethod
    def validate_record_value(
        cls,
        record_type: str,
        value: Optional[str],
        priority: Any = None,
        weight: Any = None,
        port: Any = None
    ) -> ValidationResult:
        if not value or not value.strip():
            return ValidationResult(errors=['Record value cannot be empty'])

        clean_value = value.strip()

        if record_type == 'A':
            return cls.validate_ipv4(clean_value)
        if record_type == 'AAAA':
            return cls.validate_ipv6(clean_value)
        if record_type in ('CNAME', 'NS', 'PTR'):
            return cls.validate_domain_name(clean_value, f'{record_type} target')
        if record_type == 'MX':
            return cls.validate_mx_record(clean_value, priority)
        if record_type == 'SRV':
            return cls.validate_srv_record(clean_value, priority, weight, port)
        if record_type == 'TXT':
            return cls.validate_txt_record(clean_value)
        if record_type == 'CAA':
            return cls.validate_caa_record(clean_value)
        if record_type == 'SOA':
            return cls.validate_soa_record(clean_value)

        return ValidationResult(errors=[f'Unsupported record type: {record_type}'])


def validate_record(candidate: Mapping[str, Any]) -> ValidationResult:
    """Validate a candidate record.

    ``candidate`` carries ``name``, ``type``, ``value`` and optionally
    ``ttl`` (defaults to 300), ``priority``, ``weight`` and ``port``.
    """
    record_type = str(candidate.get('type') or '').upper()
    ttl = candidate.get('ttl')
    if ttl is None:
        ttl = DEFAULT_RECORD_TTL

    result = ValidationResult()

    if record_type not in RECORD_TYPES:
        result.errors.append(f'Unsupported record type: {record_type or "(missing)"}')
        return result

    result.extend(DNSValidator.validate_record_name(candidate.get('name'), record_type))
    result.extend(DNSValidator.validate_ttl(ttl))
    result.extend(DNSValidator.validate_record_value(
        record_type,
        candidate.get('value'),
        priority=candidate.get('priority'),
        weight=candidate.get('weight'),
        port=candidate.get('port'),
    ))

    if record_type != 'MX' and record_type != 'SRV':
        ignored = [f for f in ('priority', 'weight', 'port') if candidate.get(f) is not None]
        if ignored:
            result.warnings.append(f'{", ".join(ignored)} ignored for {record_type} records')
    elif record_type == 'MX':
        ignored = [f for f in ('weight', 'port') if candidate.get(f) is not None]
        if ignored:
            result.warnings.append(f'{", ".join(ignored)} ignored for MX records')

    return result


def validate_zone(zone_data: Mapping[str, Any]) -> ValidationResult:
    """Validate zone metadata before it is stored"""
    result = ValidationResult()

    name = zone_data.get('name')
    if not name or not str(name).strip():
        result.errors.append('Zone name cannot be empty')
    else:
        result.extend(DNSValidator.validate_domain_name(str(name).strip(), 'Zone name'))

    zone_type = zone_data.get('type', 'master')
    if zone_type not in ZONE_TYPES:
        result.errors.append(f"Zone type must be one of: {', '.join(ZONE_TYPES)}")

    primary_ns = zone_data.get('primary_ns')
    if primary_ns:
        result.extend(DNSValidator.validate_domain_name(primary_ns, 'Primary nameserver'))

    admin_email = zone_data.get('admin_email')
    if admin_email:
        result.errors.extend(
            DNSValidator.validate_domain_name(admin_email.replace('@', '.'), 'Admin email').errors
        )

    for field_name in ('refresh_interval', 'retry_interval', 'expire_interval'):
        value = zone_data.get(field_name)
        if value is not None and not _in_range(value, 1, MAX_UINT32):
            result.errors.append(f'{field_name} must be a positive 32-bit integer')

    minimum_ttl = zone_data.get('minimum_ttl')
    if minimum_ttl is not None and not _in_range(minimum_ttl, 1, MAX_TTL):
        result.errors.append('minimum_ttl must be an integer between 1 and 2,147,483,647')

    return result
