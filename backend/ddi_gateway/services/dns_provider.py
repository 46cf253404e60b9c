"""
DNS provider adapter: BIND9 over RFC 2136 dynamic updates

The provider is optional. ``resolve_dns_provider`` returns either
``Available(provider)`` or ``Unavailable(reason)``; callers branch on the
handle once instead of null-checking a provider attribute.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import dns.asyncquery
import dns.exception
import dns.name
import dns.query
import dns.rcode
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.tsigkeyring
import dns.update
import dns.zone

from ..core.config import Settings
from ..core.exceptions import DNSUpdateError, UpstreamUnavailableException
from ..core.logging_config import get_dns_logger
from .command_runner import CommandRunner, run_command
from .zone_file import get_jinja_env

logger = get_dns_logger()

SETUP_REQUIRED_MESSAGE = 'BIND9 setup required - please run setup script'
DDNS_SETUP_REQUIRED_MESSAGE = 'BIND9 and DDNS setup required - please run setup script'
DDNS_SERVICE_NAME = 'isc-kea-dhcp-ddns-server'

# Rdata types whose value is a domain name that must be absolute on the wire
DOMAIN_VALUE_TYPES = ('CNAME', 'NS', 'PTR', 'MX', 'SRV')

_ZONE_STANZA = re.compile(r'zone\s+"([^"]+)"\s*(?:IN\s*)?\{([^}]*)\}', re.IGNORECASE)
_STANZA_TYPE = re.compile(r'type\s+(\w+)\s*;')
_STANZA_FILE = re.compile(r'file\s+"([^"]+)"\s*;')
_SERIAL_COMMENT = re.compile(r'(\d+)\s*;\s*Serial', re.IGNORECASE)
_KEY_STANZA = re.compile(
    r'key\s+"?([^"\s{]+)"?\s*\{\s*algorithm\s+([\w.-]+)\s*;\s*secret\s+"([^"]+)"\s*;\s*\}\s*;'
)

EXAMPLE_ZONES = [
    {
        "name": "example.com",
        "type": "master",
        "file": "db.example.com",
        "serial": 2024010100,
        "primary_ns": "ns1.example.com",
        "admin_email": "admin.example.com",
    },
    {
        "name": "1.168.192.in-addr.arpa",
        "type": "master",
        "file": "db.192.168.1",
        "serial": 2024010100,
        "primary_ns": None,
        "admin_email": None,
    },
]

EXAMPLE_RECORDS = [
    {"name": "@", "type": "NS", "ttl": 3600, "value": "ns1.example.com"},
    {"name": "ns1", "type": "A", "ttl": 3600, "value": "192.168.1.10"},
    {"name": "www", "type": "A", "ttl": 300, "value": "192.168.1.20"},
    {"name": "mail", "type": "A", "ttl": 300, "value": "192.168.1.30"},
    {"name": "@", "type": "MX", "ttl": 300, "value": "mail.example.com", "priority": 10},
    {"name": "@", "type": "TXT", "ttl": 300, "value": "v=spf1 mx ~all"},
]


def parse_key_file(text: str) -> Dict[str, Dict[str, str]]:
    """Parse BIND ``key`` stanzas into ``{name: {algorithm, secret}}``"""
    return {
        name: {"algorithm": algorithm, "secret": secret}
        for name, algorithm, secret in _KEY_STANZA.findall(text)
    }


def parse_named_conf_zones(text: str) -> List[Dict[str, Any]]:
    """Zone stanzas declared in a named.conf include file"""
    zones = []
    for name, body in _ZONE_STANZA.findall(text):
        zone_type = _STANZA_TYPE.search(body)
        zone_file = _STANZA_FILE.search(body)
        zones.append({
            "name": name,
            "type": zone_type.group(1) if zone_type else None,
            "file": zone_file.group(1) if zone_file else None,
        })
    return zones


def render_tsig_key_file(keys: Iterable[Any], generated_at: Optional[datetime] = None) -> str:
    """Render TSIG keys as a BIND key include file"""
    template = get_jinja_env().get_template("tsig_keys.conf.j2")
    return template.render(
        keys=list(keys),
        generated_at=(generated_at or datetime.utcnow()).isoformat()
    )


def format_rdata(record: Dict[str, Any]) -> str:
    """Rdata presentation text for a stored record"""
    record_type = record['type'].upper()
    value = record['value'].strip()

    if record_type in DOMAIN_VALUE_TYPES and not value.endswith('.'):
        value = f"{value}."
    if record_type == 'MX':
        return f"{record.get('priority')} {value}"
    if record_type == 'SRV':
        return f"{record.get('priority')} {record.get('weight')} {record.get('port')} {value}"
    if record_type == 'TXT' and not value.startswith('"'):
        return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'
    return value


def _name_text(name: dns.name.Name) -> str:
    return name.to_text().rstrip('.')


def rdata_to_record(name: str, ttl: int, rdata: Any) -> Dict[str, Any]:
    """Record dictionary for an rdata received from the nameserver"""
    record_type = dns.rdatatype.to_text(rdata.rdtype)
    record: Dict[str, Any] = {"name": name, "type": record_type, "ttl": ttl}

    if record_type == 'MX':
        record.update(priority=rdata.preference, value=_name_text(rdata.exchange))
    elif record_type == 'SRV':
        record.update(
            priority=rdata.priority, weight=rdata.weight, port=rdata.port,
            value=_name_text(rdata.target)
        )
    elif record_type in ('CNAME', 'NS', 'PTR'):
        record["value"] = _name_text(rdata.target)
    elif record_type == 'TXT':
        record["value"] = b''.join(rdata.strings).decode(errors='replace')
    else:
        record["value"] = rdata.to_text()
    return record


class DNSProvider(ABC):
    """Capability the core needs from an authoritative nameserver"""

    # TSIG key signing the updates, if any
    key_name: Optional[str] = None

    @abstractmethod
    async def get_zones(self) -> Dict[str, Any]:
        """``{"zones": [...]}`` as served by the nameserver"""

    @abstractmethod
    async def get_records(self, zone: str) -> Dict[str, Any]:
        """``{"records": [...]}`` for a zone"""

    @abstractmethod
    async def upsert_record(
        self, zone: str, record: Dict[str, Any], rrset: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Replace the RRset at the record's name and type.

        ``rrset`` is every record that should remain at that name and type;
        when omitted the RRset becomes the single ``record``.
        """

    @abstractmethod
    async def delete_record(self, zone: str, name: str, record_type: str) -> Dict[str, Any]:
        """Remove the RRset at a name and type"""

    @abstractmethod
    async def get_status(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_ddns_status(self) -> Dict[str, Any]:
        pass


class BindDNSProvider(DNSProvider):
    """BIND9 provider using TSIG-signed dynamic updates and zone transfers"""

    def __init__(
        self,
        settings: Settings,
        key_name: str,
        key_algorithm: str,
        key_secret: str,
        command_runner: CommandRunner = run_command
    ):
        self.server = settings.DNS_SERVER
        self.port = settings.DNS_PORT
        self.timeout = settings.DNS_QUERY_TIMEOUT
        self.zone_dir = Path(settings.DNS_ZONE_DIR)
        self.named_conf_local = Path(settings.DNS_NAMED_CONF_LOCAL)
        self.key_name = key_name
        self.key_algorithm = key_algorithm
        self.keyring = dns.tsigkeyring.from_text({key_name: (key_algorithm, key_secret)})
        self.keyname = dns.name.from_text(key_name)
        self.command_runner = command_runner

    def _new_update(self, zone: str) -> dns.update.UpdateMessage:
        return dns.update.UpdateMessage(zone, keyring=self.keyring, keyname=self.keyname)

    async def _send(self, update: dns.update.UpdateMessage, description: str) -> None:
        try:
            response = await dns.asyncquery.tcp(update, self.server, timeout=self.timeout, port=self.port)
        except dns.exception.Timeout as e:
            raise UpstreamUnavailableException(
                f"DNS update timed out after {self.timeout}s: {description}"
            ) from e
        except (OSError, dns.exception.DNSException) as e:
            raise UpstreamUnavailableException(f"DNS update failed: {description}: {e}") from e

        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            raise DNSUpdateError(
                f"DNS update rejected ({dns.rcode.to_text(rcode)}): {description}",
                details={"rcode": dns.rcode.to_text(rcode)}
            )

    async def get_zones(self) -> Dict[str, Any]:
        text = await asyncio.to_thread(self.named_conf_local.read_text)
        zones = []
        for zone in parse_named_conf_zones(text):
            zone["serial"] = await asyncio.to_thread(self._read_serial, zone.get("file"))
            is_reverse = zone["name"].endswith("in-addr.arpa") or zone["name"].endswith("ip6.arpa")
            zone["primary_ns"] = None if is_reverse else f"ns1.{zone['name']}"
            zone["admin_email"] = None if is_reverse else f"admin.{zone['name']}"
            zones.append(zone)
        return {"zones": zones}

    def _read_serial(self, file_name: Optional[str]) -> Optional[int]:
        if not file_name:
            return None
        try:
            content = (self.zone_dir / Path(file_name).name).read_text()
        except OSError:
            return None
        match = _SERIAL_COMMENT.search(content)
        return int(match.group(1)) if match else None

    def _transfer(self, zone: str) -> dns.zone.Zone:
        return dns.zone.from_xfr(
            dns.query.xfr(
                self.server, zone, port=self.port, keyring=self.keyring,
                keyname=self.keyname, relativize=False, lifetime=self.timeout
            ),
            relativize=False
        )

    async def get_records(self, zone: str) -> Dict[str, Any]:
        try:
            transferred = await asyncio.wait_for(
                asyncio.to_thread(self._transfer, zone), timeout=self.timeout + 1
            )
        except (asyncio.TimeoutError, dns.exception.Timeout) as e:
            raise UpstreamUnavailableException(f"Zone transfer for {zone} timed out") from e
        except (OSError, dns.exception.DNSException) as e:
            raise DNSUpdateError(f"Zone transfer for {zone} failed: {e}") from e

        origin = transferred.origin
        records = []
        for name, ttl, rdata in transferred.iterate_rdatas():
            record_type = dns.rdatatype.to_text(rdata.rdtype)
            # The apex SOA and NS belong to the zone definition, not to its records
            if record_type == 'SOA' or (record_type == 'NS' and name == origin):
                continue
            relative = name.relativize(origin).to_text()
            records.append(rdata_to_record(relative, ttl, rdata))
        return {"records": records}

    async def upsert_record(
        self, zone: str, record: Dict[str, Any], rrset: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        origin = dns.name.from_text(zone)
        name = dns.name.from_text(record['name'], origin=origin)
        record_type = record['type'].upper()
        rdtype = dns.rdatatype.from_text(record_type)

        update = self._new_update(zone)
        update.delete(name, rdtype)
        for member in rrset if rrset is not None else [record]:
            rdata = dns.rdata.from_text(
                dns.rdataclass.IN, rdtype, format_rdata(member), origin=origin, relativize=False
            )
            update.add(name, int(member.get('ttl') or 300), rdata)

        await self._send(update, f"{record['name']} {record_type} in {zone}")
        logger.info(f"Updated {record['name']} {record_type} in zone {zone}")
        return {"success": True, "message": f"Record {record['name']} {record_type} updated successfully"}

    async def delete_record(self, zone: str, name: str, record_type: str) -> Dict[str, Any]:
        origin = dns.name.from_text(zone)
        update = self._new_update(zone)
        update.delete(dns.name.from_text(name, origin=origin), dns.rdatatype.from_text(record_type.upper()))

        await self._send(update, f"{name} {record_type} in {zone}")
        logger.info(f"Deleted {name} {record_type} from zone {zone}")
        return {"success": True, "message": f"Record {name} {record_type} deleted successfully"}

    async def get_status(self) -> Dict[str, Any]:
        result = await self.command_runner(["rndc", "status"], timeout=self.timeout)
        if result["returncode"] != 0:
            return {"running": False, "error": result["stderr"].strip() or "rndc status failed"}

        status = {"running": True, "version": None, "config_time": None, "boot_time": None, "zones": 0}
        for line in result["stdout"].splitlines():
            if "version:" in line:
                status["version"] = line.split("version:", 1)[1].strip()
            elif "config time:" in line:
                status["config_time"] = line.split("config time:", 1)[1].strip()
            elif "boot time:" in line:
                status["boot_time"] = line.split("boot time:", 1)[1].strip()

        try:
            status["zones"] = len((await self.get_zones())["zones"])
        except OSError as e:
            logger.warning(f"Could not read {self.named_conf_local}: {e}")
        return status

    async def get_ddns_status(self) -> Dict[str, Any]:
        result = await self.command_runner(
            ["systemctl", "is-active", DDNS_SERVICE_NAME], timeout=self.timeout
        )
        d2_running = result["stdout"].strip() == "active"
        bind_status = await self.get_status()
        return {
            "d2_running": d2_running,
            "bind_running": bind_status.get("running", False),
            "last_update": datetime.utcnow().isoformat(),
            "key_name": self.key_name,
        }


@dataclass(frozen=True)
class Available:
    provider: DNSProvider


@dataclass(frozen=True)
class Unavailable:
    """No usable provider; listings fall back to example data flagged ``setup_required``"""
    reason: str

    def zones(self) -> Dict[str, Any]:
        return {"zones": EXAMPLE_ZONES, "setup_required": True, "message": self.reason}

    def records(self, zone: str) -> Dict[str, Any]:
        return {"records": EXAMPLE_RECORDS, "zone": zone, "setup_required": True, "message": self.reason}

    def status(self) -> Dict[str, Any]:
        return {
            "running": False,
            "version": "BIND9 not configured",
            "config_time": None,
            "boot_time": None,
            "zones": 0,
            "setup_required": True,
            "message": self.reason,
        }

    def ddns_status(self) -> Dict[str, Any]:
        return {
            "d2_running": False,
            "bind_running": False,
            "last_update": None,
            "setup_required": True,
            "message": DDNS_SETUP_REQUIRED_MESSAGE,
        }


ProviderHandle = Union[Available, Unavailable]


def resolve_dns_provider(settings: Settings, command_runner: CommandRunner = run_command) -> ProviderHandle:
    """Build the BIND9 provider, or say why it cannot be used"""
    if not settings.DNS_PROVIDER_ENABLED:
        logger.info("DNS provider disabled by configuration")
        return Unavailable("DNS provider disabled")

    named_conf = Path(settings.DNS_NAMED_CONF_LOCAL)
    key_file = Path(settings.DNS_TSIG_KEY_FILE)
    if not named_conf.exists() or not key_file.exists():
        logger.warning(f"BIND9 not configured: {named_conf} or {key_file} missing")
        return Unavailable(SETUP_REQUIRED_MESSAGE)

    keys = parse_key_file(key_file.read_text())
    key = keys.get(settings.DNS_TSIG_KEY_NAME)
    if key is None:
        logger.warning(f"TSIG key {settings.DNS_TSIG_KEY_NAME} not found in {key_file}")
        return Unavailable(f"TSIG key '{settings.DNS_TSIG_KEY_NAME}' not found in {key_file}")

    provider = BindDNSProvider(
        settings, settings.DNS_TSIG_KEY_NAME, key["algorithm"], key["secret"], command_runner
    )
    logger.info(f"Using BIND9 provider at {settings.DNS_SERVER}:{settings.DNS_PORT}")
    return Available(provider)
