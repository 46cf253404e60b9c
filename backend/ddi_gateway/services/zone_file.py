"""
BIND master-file codec for zone exports, backups and imports
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..core.logging_config import get_logger
from ..models.dns import RECORD_TYPES

logger = get_logger(__name__)

# SOA and NS come first so dependent records resolve in naive parsers
RECORD_TYPE_ORDER = ('SOA', 'NS', 'A', 'AAAA', 'CNAME', 'MX', 'TXT', 'SRV', 'PTR', 'CAA')

DNS_CLASSES = ('IN', 'CH', 'HS')

_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|\S+')

_template_dir = Path(__file__).parent.parent / "templates"
_jinja_env: Optional[Environment] = None


def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, Mapping):
        return dict(item)
    return item.to_dict()


def _ensure_trailing_dot(name: str) -> str:
    return name if name.endswith('.') else f"{name}."


def format_record_value(record: Mapping[str, Any]) -> str:
    """Rdata as it appears in a zone file; MX and SRV carry their numeric fields"""
    record_type = record['type']
    if record_type == 'MX':
        return f"{record.get('priority')} {record['value']}"
    if record_type == 'SRV':
        return f"{record.get('priority')} {record.get('weight')} {record.get('port')} {record['value']}"
    return record['value']


def format_record_line(record: Mapping[str, Any]) -> str:
    """One resource record line: name, ttl, class, type, value"""
    return (
        f"{record['name']:<20} {str(record['ttl']):<8} IN {record['type']:<8} "
        f"{format_record_value(record)}"
    )


def get_jinja_env() -> Environment:
    """Template environment shared by the zone-file and key-file renderers"""
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = Environment(
            loader=FileSystemLoader(str(_template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True
        )
        _jinja_env.filters['ensure_trailing_dot'] = _ensure_trailing_dot
        _jinja_env.filters['format_record_line'] = format_record_line
    return _jinja_env


def encode_zone(zone: Any, records: Iterable[Any], generated_at: Optional[datetime] = None) -> str:
    """Render a zone and its records as BIND master-file text.

    Records are grouped by type in ``RECORD_TYPE_ORDER``; within a group the
    input order is kept. Deleted records are skipped. Apart from the
    ``generated_at`` comment line the output depends only on the inputs.
    """
    zone_data = _as_dict(zone)
    record_data = [_as_dict(r) for r in records]
    active = [r for r in record_data if r.get('status', 'active') != 'deleted']

    groups = []
    for record_type in RECORD_TYPE_ORDER:
        typed = [r for r in active if r['type'] == record_type]
        if typed:
            groups.append({'type': record_type, 'records': typed})

    template = get_jinja_env().get_template("zone_file.j2")
    return template.render(
        zone=zone_data,
        groups=groups,
        generated_at=(generated_at or datetime.utcnow()).isoformat()
    )


@dataclass
class ParsedZoneFile:
    """Records found in zone-file text, with per-line parse errors"""
    origin: str
    default_ttl: Optional[int] = None
    records: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _strip_comment(line: str) -> str:
    in_quotes = False
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ';' and not in_quotes:
            return line[:index]
    return line


def _logical_lines(text: str) -> Iterable[Tuple[int, str]]:
    """Yield (line number, text) with parenthesised continuations joined"""
    buffer: List[str] = []
    start = 0
    depth = 0
    for number, raw in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw).rstrip()
        if not buffer:
            if not line.strip():
                continue
            start = number
        depth += line.count('(') - line.count(')')
        buffer.append(line.replace('(', ' ').replace(')', ' '))
        if depth <= 0:
            yield start, ' '.join(buffer) if len(buffer) > 1 else buffer[0]
            buffer = []
            depth = 0
    if buffer:
        yield start, ' '.join(buffer)


def _relative_name(name: str, origin: str) -> str:
    if name == '@':
        return name
    if not name.endswith('.'):
        return name
    fqdn = name.rstrip('.').lower()
    if fqdn == origin:
        return '@'
    suffix = f".{origin}"
    if fqdn.endswith(suffix):
        return name[:len(fqdn) - len(suffix)]
    return name.rstrip('.')


def _parse_int(token: str, field_name: str) -> int:
    if not token.isdigit():
        raise ValueError(f"{field_name} must be a number, got '{token}'")
    return int(token)


def _parse_record(tokens: List[str], name: str, default_ttl: int) -> Dict[str, Any]:
    ttl = default_ttl
    while tokens:
        head = tokens[0]
        if head.isdigit():
            ttl = int(head)
        elif head.upper() in DNS_CLASSES:
            pass
        else:
            break
        tokens.pop(0)

    if not tokens:
        raise ValueError("Missing record type")

    record_type = tokens.pop(0).upper()
    if record_type not in RECORD_TYPES:
        raise ValueError(f"Unsupported record type: {record_type}")
    if not tokens:
        raise ValueError(f"Missing value for {record_type} record")

    record: Dict[str, Any] = {
        'name': name, 'type': record_type, 'ttl': ttl,
        'priority': None, 'weight': None, 'port': None,
    }

    if record_type == 'MX':
        if len(tokens) < 2:
            raise ValueError("MX record needs a priority and a target")
        record['priority'] = _parse_int(tokens[0], 'MX priority')
        record['value'] = ' '.join(tokens[1:])
    elif record_type == 'SRV':
        if len(tokens) < 4:
            raise ValueError("SRV record needs priority, weight, port and target")
        record['priority'] = _parse_int(tokens[0], 'SRV priority')
        record['weight'] = _parse_int(tokens[1], 'SRV weight')
        record['port'] = _parse_int(tokens[2], 'SRV port')
        record['value'] = ' '.join(tokens[3:])
    elif record_type == 'TXT':
        # Quoted character strings are concatenated; unquoted text is kept as is
        if all(len(t) >= 2 and t.startswith('"') and t.endswith('"') for t in tokens):
            record['value'] = ''.join(t[1:-1] for t in tokens)
        else:
            record['value'] = ' '.join(tokens)
    else:
        record['value'] = ' '.join(tokens)

    return record


def parse_zone_file(text: str, origin: str, default_ttl: int = 300) -> ParsedZoneFile:
    """Parse BIND master-file text into record dictionaries.

    Names are made relative to ``origin`` (the apex becomes ``@``). Lines
    that cannot be parsed are reported in ``errors`` and skipped; the
    records themselves are not validated here.
    """
    zone_origin = origin.rstrip('.').lower()
    result = ParsedZoneFile(origin=zone_origin)
    ttl = default_ttl
    previous_name = '@'

    for number, line in _logical_lines(text):
        tokens = _TOKEN.findall(line)
        if not tokens:
            continue

        directive = tokens[0].upper()
        if directive == '$TTL':
            try:
                ttl = _parse_int(tokens[1] if len(tokens) > 1 else '', '$TTL')
                result.default_ttl = ttl
            except ValueError as e:
                result.errors.append(f"Line {number}: {e}")
            continue
        if directive == '$ORIGIN':
            if len(tokens) > 1:
                zone_origin = tokens[1].rstrip('.').lower()
            continue
        if directive.startswith('$'):
            result.errors.append(f"Line {number}: Unsupported directive {tokens[0]}")
            continue

        if line[0].isspace():
            name = previous_name
        else:
            name = _relative_name(tokens.pop(0), zone_origin)
            previous_name = name

        try:
            result.records.append(_parse_record(tokens, name, ttl))
        except ValueError as e:
            result.errors.append(f"Line {number}: {e}")

    logger.debug(f"Parsed {len(result.records)} records for {zone_origin} ({len(result.errors)} errors)")
    return result
