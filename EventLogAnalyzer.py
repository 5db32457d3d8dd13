#! /usr/bin/env python3

import argparse
import csv
import ctypes
import json
import os
import re
import sys
import xml.etree.ElementTree as ET
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from types import MappingProxyType

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

__version__ = '1.0.0'

DEFAULT_LOG_NAME = 'System'
DEFAULT_DAYS = 7
DEFAULT_MAX_RESULTS = 50
MESSAGE_MAX_LENGTH = 800
TRUNCATION_MARKER = '... [truncated]'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
USER_PRESETS_FILENAME = 'UserPresets.json'
BUILTIN_SLOT_START = 10
USER_SLOT_START = 20
MAX_EVENT_ID = 65535

CSV_COLUMNS = ['TimeCreated', 'EventID', 'LogName', 'ProviderName', 'Level',
               'Source', 'Computer', 'UserName', 'Message']

LEVEL_NAMES = {
    0: 'Information',  # LogAlways, used by Security audit events
    1: 'Critical',
    2: 'Error',
    3: 'Warning',
    4: 'Information',
    5: 'Verbose',
}

EVENT_NS = {'e': 'http://schemas.microsoft.com/win/2004/08/events/event'}

REFERENCE_LINKS = (
    ('Windows security audit events (Microsoft Learn)',
     'https://learn.microsoft.com/en-us/windows/security/threat-protection/auditing/advanced-security-audit-policy-settings'),
    ('Windows Security Log Encyclopedia',
     'https://www.ultimatewindowssecurity.com/securitylog/encyclopedia/'),
    ('Windows Event Log API',
     'https://learn.microsoft.com/en-us/windows/win32/wes/windows-event-log'),
    ('Consuming events with XPath queries',
     'https://learn.microsoft.com/en-us/windows/win32/wes/consuming-events'),
)


class EventLogQueryError(Exception):
    """Raised when the Windows Event Log cannot be queried for an Event ID."""


Preset = namedtuple('Preset', ['name', 'event_ids', 'log_name', 'provider_name', 'description'],
                    defaults=(DEFAULT_LOG_NAME, None, ''))

QuerySpec = namedtuple('QuerySpec', ['log_name', 'event_ids', 'provider_name', 'levels',
                                     'start_time', 'max_results'])

MenuCommand = namedtuple('MenuCommand', ['kind', 'value'])

MENU_MANUAL = 'manual'
MENU_REFERENCE = 'reference'
MENU_CREATE_PRESET = 'create_preset'
MENU_BUILTIN_PRESET = 'builtin_preset'
MENU_USER_PRESET = 'user_preset'
MENU_QUIT = 'quit'
MENU_INVALID = 'invalid'


class QueryOutcome(namedtuple('QueryOutcome', ['event_id', 'records', 'error'])):
    """Result of querying a single Event ID: records on success, an error message on failure."""
    __slots__ = ()

    @property
    def succeeded(self):
        return self.error is None


def get_default_event_descriptions():
    """Get the built-in Event ID descriptions"""
    return {
        # System: startup, shutdown and crashes
        41: "Kernel-Power: The system rebooted without cleanly shutting down first",
        1001: "BugCheck / Windows Error Reporting: the computer has rebooted from a bugcheck or an application fault was reported",
        1074: "A process or user initiated a system shutdown or restart",
        1076: "The reason supplied for the last unexpected shutdown",
        6005: "The Event Log service was started (system startup)",
        6006: "The Event Log service was stopped (clean shutdown)",
        6008: "The previous system shutdown was unexpected",
        6009: "Operating system version information logged at boot",
        6013: "System uptime in seconds",
        # Services
        7000: "A service failed to start",
        7001: "A service depends on another service that failed to start",
        7009: "A timeout was reached while waiting for a service to connect",
        7011: "A timeout was reached while waiting for a transaction response from a service",
        7022: "A service hung on starting",
        7023: "A service terminated with an error",
        7031: "A service terminated unexpectedly and a corrective action was taken",
        7034: "A service terminated unexpectedly",
        7036: "A service entered the running or stopped state",
        7040: "The start type of a service was changed",
        7045: "A new service was installed in the system",
        # Storage
        7: "The device has a bad block",
        11: "The driver detected a controller error on a device",
        51: "An error was detected on a device during a paging operation",
        55: "The file system structure on the disk is corrupt and unusable",
        98: "Volume repair or file system health notification (NTFS)",
        153: "The IO operation was retried",
        # Windows Update
        19: "Windows Update: installation successful",
        20: "Windows Update: installation failure",
        43: "Windows Update: installation started",
        44: "Windows Update: download started",
        # Application
        1000: "Application Error: a faulting application crashed",
        1002: "Application Hang: a program stopped interacting with Windows",
        1026: ".NET Runtime: an application terminated due to an unhandled exception",
        # Security: logon and authentication
        4624: "An account was successfully logged on",
        4625: "An account failed to log on",
        4634: "An account was logged off",
        4647: "User initiated logoff",
        4648: "A logon was attempted using explicit credentials",
        4672: "Special privileges assigned to new logon",
        4768: "A Kerberos authentication ticket (TGT) was requested",
        4769: "A Kerberos service ticket was requested",
        4771: "Kerberos pre-authentication failed",
        4776: "The computer attempted to validate the credentials for an account (NTLM)",
        4778: "A session was reconnected to a Window Station",
        4779: "A session was disconnected from a Window Station",
        4800: "The workstation was locked",
        4801: "The workstation was unlocked",
        # Security: account management
        4720: "A user account was created",
        4722: "A user account was enabled",
        4723: "An attempt was made to change an account's password",
        4724: "An attempt was made to reset an account's password",
        4725: "A user account was disabled",
        4726: "A user account was deleted",
        4738: "A user account was changed",
        4740: "A user account was locked out",
        4767: "A user account was unlocked",
        # Security: group membership
        4728: "A member was added to a security-enabled global group",
        4729: "A member was removed from a security-enabled global group",
        4732: "A member was added to a security-enabled local group",
        4733: "A member was removed from a security-enabled local group",
        4756: "A member was added to a security-enabled universal group",
        4757: "A member was removed from a security-enabled universal group",
        # Security: processes, tasks and tampering
        4688: "A new process has been created",
        4689: "A process has exited",
        4697: "A service was installed in the system",
        4698: "A scheduled task was created",
        4699: "A scheduled task was deleted",
        4700: "A scheduled task was enabled",
        4701: "A scheduled task was disabled",
        4702: "A scheduled task was updated",
        1100: "The event logging service has shut down",
        1102: "The audit log was cleared",
        1104: "The security log is now full",
        104: "An event log was cleared (System)",
        # PowerShell
        4103: "PowerShell module logging: pipeline execution details",
        4104: "PowerShell script block logging: a script block was executed",
    }


def get_builtin_presets():
    """Get the built-in presets, in menu slot order starting at slot 10"""
    return (
        Preset('Unexpected shutdowns', (41, 1074, 6005, 6006, 6008), 'System', None,
               'Crashes, power loss and restart history'),
        Preset('Failed logons', (4625, 4771, 4776), 'Security', None,
               'Failed interactive, network and Kerberos authentication'),
        Preset('Successful logons', (4624, 4634, 4647, 4648, 4672), 'Security', None,
               'Logon, logoff and privileged logon activity'),
        Preset('Account management', (4720, 4722, 4723, 4724, 4725, 4726, 4738, 4740, 4767),
               'Security', None, 'User account creation, changes and lockouts'),
        Preset('Group membership changes', (4728, 4729, 4732, 4733, 4756, 4757), 'Security', None,
               'Members added to or removed from security groups'),
        Preset('Service changes', (7000, 7023, 7034, 7036, 7040, 7045), 'System',
               'Service Control Manager', 'Service failures, installs and start type changes'),
        Preset('Windows Update', (19, 20, 43, 44), 'System',
               'Microsoft-Windows-WindowsUpdateClient', 'Update downloads, installs and failures'),
        Preset('Disk and file system errors', (7, 11, 51, 55, 98, 153), 'System', None,
               'Bad blocks, controller errors and NTFS corruption'),
        Preset('Audit log tampering', (1100, 1102, 1104), 'Security', None,
               'Audit log cleared, full or logging service stopped'),
        Preset('Application crashes', (1000, 1001, 1002, 1026), 'Application', None,
               'Application faults, hangs and .NET runtime crashes'),
    )


class EventCatalog:
    """Read-only lookup of Event ID descriptions and built-in presets."""

    def __init__(self, descriptions, presets):
        self._descriptions = MappingProxyType(dict(descriptions))
        self._presets = tuple(presets)

    @property
    def descriptions(self):
        return self._descriptions

    @property
    def presets(self):
        return self._presets

    def describe(self, event_id):
        return self._descriptions.get(event_id, f"No description available for Event ID {event_id}")

    def preset_by_key(self, key):
        """Look up a built-in preset by menu slot ("10".."19") or by name (case-insensitive)."""
        key = str(key).strip()
        if key.isdecimal():
            index = int(key) - BUILTIN_SLOT_START
            if 0 <= index < len(self._presets):
                return self._presets[index]
            return None
        for preset in self._presets:
            if preset.name.casefold() == key.casefold():
                return preset
        return None


def get_default_catalog():
    return EventCatalog(get_default_event_descriptions(), get_builtin_presets())


def parse_event_id_list(text):
    """Parse a comma-separated list of Event IDs, keeping order and dropping repeats.

    Raises ValueError when the list is empty or contains something that is not an Event ID.
    """
    event_ids = []
    for part in str(text).split(','):
        part = part.strip()
        if not part:
            continue
        try:
            event_id = int(part)
        except ValueError:
            raise ValueError(f"'{part}' is not a valid Event ID") from None
        if event_id < 0 or event_id > MAX_EVENT_ID:
            raise ValueError(f"Event ID {event_id} is out of range (0-{MAX_EVENT_ID})")
        if event_id not in event_ids:
            event_ids.append(event_id)
    if not event_ids:
        raise ValueError("At least one Event ID is required")
    return event_ids


def parse_level_list(text):
    """Parse a comma-separated list of severity levels (1-5)."""
    levels = set()
    for part in str(text).split(','):
        part = part.strip()
        if not part:
            continue
        try:
            level = int(part)
        except ValueError:
            raise ValueError(f"'{part}' is not a valid level") from None
        if level < 1 or level > 5:
            raise ValueError(f"Level {level} is out of range (1-5)")
        levels.add(level)
    if not levels:
        raise ValueError("At least one level is required")
    return levels


def make_query_spec(event_ids, log_name=DEFAULT_LOG_NAME, provider_name=None, levels=None,
                    days=DEFAULT_DAYS, max_results=DEFAULT_MAX_RESULTS, now=None):
    """Build a validated QuerySpec covering the last ``days`` days."""
    event_ids = tuple(dict.fromkeys(event_ids))
    if not event_ids:
        raise ValueError("At least one Event ID is required")
    if levels:
        levels = frozenset(levels)
        invalid = [lvl for lvl in levels if lvl < 1 or lvl > 5]
        if invalid:
            raise ValueError(f"Invalid levels: {sorted(invalid)}")
    else:
        levels = None
    if int(days) <= 0:
        raise ValueError("Days must be a positive integer")
    if int(max_results) <= 0:
        raise ValueError("Max results must be a positive integer")
    start_time = (now or datetime.now()) - timedelta(days=int(days))
    return QuerySpec(log_name or DEFAULT_LOG_NAME, event_ids, provider_name or None, levels,
                     start_time, int(max_results))


def truncate_message(message, limit=MESSAGE_MAX_LENGTH):
    if message is None:
        return ''
    if len(message) <= limit:
        return message
    return message[:limit] + TRUNCATION_MARKER


def level_color(level):
    """Console colour for a level display name"""
    if level in ('Critical', 'Error'):
        return Fore.RED + Style.BRIGHT
    if level == 'Warning':
        return Fore.YELLOW
    if level == 'Information':
        return Fore.GREEN
    return ''


# --- Windows Event Log access -------------------------------------------------

def _to_system_time(value):
    """Format a datetime as an event log SystemTime (UTC) literal. Naive values are local time."""
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')


def _xpath_literal(value):
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    raise ValueError(f"Provider name cannot contain both quote characters: {value}")


def build_event_xpath(event_id, start_time, provider_name=None, levels=None):
    """Build the XPath filter selecting one Event ID since start_time."""
    clauses = []
    if provider_name:
        clauses.append(f"Provider[@Name={_xpath_literal(provider_name)}]")
    if levels:
        clauses.append('(' + ' or '.join(f'Level={lvl}' for lvl in sorted(levels)) + ')')
    clauses.append(f"(EventID={int(event_id)})")
    clauses.append(f"TimeCreated[@SystemTime>='{_to_system_time(start_time)}']")
    return f"*[System[{' and '.join(clauses)}]]"


def _parse_system_time(ts):
    """Convert an event SystemTime attribute to a naive local datetime."""
    if not ts:
        return None
    # Event log timestamps carry 7 fractional digits; datetime accepts at most 6
    normalized = re.sub(r'\.(\d{6})\d*', r'.\1', ts.strip()).replace('Z', '+00:00')
    try:
        return datetime.fromisoformat(normalized).astimezone().replace(tzinfo=None)
    except ValueError:
        parsed = datetime.strptime(ts.split('.')[0].rstrip('Z'), '%Y-%m-%dT%H:%M:%S')
        return parsed.replace(tzinfo=timezone.utc).astimezone().replace(tzinfo=None)


def _node_text(node):
    if node is None or node.text is None:
        return None
    return node.text.strip()


def parse_event_xml(xml_text):
    """Parse a rendered event into a record dict.

    The record carries ``time_created``, ``id``, ``log_name``, ``provider_name``,
    ``level``, ``level_display_name``, ``machine_name``, ``user_id``, ``message``
    and ``properties`` (EventData/UserData values in document order).
    """
    root = ET.fromstring(xml_text)
    system = root.find('e:System', EVENT_NS)
    if system is None:
        raise ValueError("Event XML has no System element")

    provider = system.find('e:Provider', EVENT_NS)
    time_node = system.find('e:TimeCreated', EVENT_NS)
    security = system.find('e:Security', EVENT_NS)

    event_id_text = _node_text(system.find('e:EventID', EVENT_NS)) or '0'
    level_text = _node_text(system.find('e:Level', EVENT_NS))
    level = int(level_text) if level_text and level_text.isdecimal() else None

    properties = []
    event_data = root.find('e:EventData', EVENT_NS)
    if event_data is not None:
        for data in event_data.findall('e:Data', EVENT_NS):
            properties.append(''.join(data.itertext()).strip())
    user_data = root.find('e:UserData', EVENT_NS)
    if user_data is not None:
        for node in user_data.iter():
            if len(node) == 0 and node.text and node.text.strip():
                properties.append(node.text.strip())

    rendering = root.find('e:RenderingInfo', EVENT_NS)
    message = None
    level_display_name = None
    if rendering is not None:
        message = _node_text(rendering.find('e:Message', EVENT_NS))
        level_display_name = _node_text(rendering.find('e:Level', EVENT_NS))

    return {
        'time_created': _parse_system_time(time_node.get('SystemTime') if time_node is not None else None),
        'id': int(event_id_text),
        'log_name': _node_text(system.find('e:Channel', EVENT_NS)),
        'provider_name': provider.get('Name') if provider is not None else None,
        'level': level,
        'level_display_name': level_display_name or LEVEL_NAMES.get(level),
        'machine_name': _node_text(system.find('e:Computer', EVENT_NS)),
        'user_id': security.get('UserID') if security is not None else None,
        'message': message,
        'properties': properties,
    }


def parse_rendered_event(xml_text):
    """Parse one rendered event, returning None (with a warning) when it is unreadable."""
    try:
        return parse_event_xml(xml_text)
    except (ET.ParseError, ValueError) as e:
        print(f"{Fore.YELLOW}Warning: Skipping unreadable event record: {e}")
        return None


def _describe_win_error(log_name, error):
    winerror = getattr(error, 'winerror', None)
    if winerror == 5:
        return f"{log_name} log: Access denied - run from an elevated prompt"
    if winerror == 15007:
        return f"{log_name} log: The specified channel could not be found"
    if winerror == 15001:
        return f"{log_name} log: The query filter is invalid"
    strerror = getattr(error, 'strerror', None) or str(error)
    funcname = getattr(error, 'funcname', None)
    return f"{funcname}: {strerror}" if funcname else strerror


def _resolve_account(sid_string):
    """Resolve a SID string to DOMAIN\\user, falling back to the SID itself."""
    if not sid_string:
        return None
    import pywintypes
    import win32security
    try:
        sid = win32security.ConvertStringSidToSid(sid_string)
        name, domain, _ = win32security.LookupAccountSid(None, sid)
    except pywintypes.error:
        return sid_string
    return f"{domain}\\{name}" if domain else name


def _format_with_publisher(record, event, publishers):
    """Fill in the message and level text using the provider's message resources."""
    import pywintypes
    import win32evtlog

    provider = record.get('provider_name')
    if not provider:
        return
    if provider not in publishers:
        try:
            publishers[provider] = win32evtlog.EvtOpenPublisherMetadata(provider)
        except pywintypes.error:
            publishers[provider] = None
    metadata = publishers[provider]
    if metadata is None:
        return
    try:
        record['message'] = win32evtlog.EvtFormatMessage(metadata, event, win32evtlog.EvtFormatMessageEvent)
    except pywintypes.error:
        pass
    try:
        record['level_display_name'] = win32evtlog.EvtFormatMessage(
            metadata, event, win32evtlog.EvtFormatMessageLevel) or record['level_display_name']
    except pywintypes.error:
        pass


def query_windows_event_log(log_name, event_id, start_time, provider_name=None, levels=None,
                            max_events=DEFAULT_MAX_RESULTS):
    """Query one event log channel for one Event ID, newest first.

    Returns a list of record dicts (see parse_event_xml). Raises EventLogQueryError
    when the log cannot be queried.
    """
    if sys.platform != 'win32':
        raise EventLogQueryError("The Windows Event Log is only available on Windows")
    import pywintypes
    import win32evtlog

    xpath = build_event_xpath(event_id, start_time, provider_name, levels)
    flags = win32evtlog.EvtQueryChannelPath | win32evtlog.EvtQueryReverseDirection
    try:
        query = win32evtlog.EvtQuery(log_name, flags, xpath)
    except pywintypes.error as e:
        raise EventLogQueryError(_describe_win_error(log_name, e)) from e

    records = []
    publishers = {}
    while len(records) < max_events:
        try:
            events = win32evtlog.EvtNext(query, min(64, max_events - len(records)))
        except pywintypes.error as e:
            raise EventLogQueryError(_describe_win_error(log_name, e)) from e
        if not events:
            break
        for event in events:
            record = parse_rendered_event(win32evtlog.EvtRender(event, win32evtlog.EvtRenderEventXml))
            if record is None:
                continue
            _format_with_publisher(record, event, publishers)
            record['user_id'] = _resolve_account(record['user_id'])
            records.append(record)
    return records


def run_event_query(spec, event_id, query_func):
    """Query a single Event ID, converting any failure into a failed QueryOutcome."""
    try:
        records = query_func(spec.log_name, event_id, spec.start_time,
                             provider_name=spec.provider_name, levels=spec.levels,
                             max_events=spec.max_results)
    except Exception as e:
        return QueryOutcome(event_id, [], str(e) or e.__class__.__name__)
    records = [r for r in (records or []) if r.get('id') == event_id]
    return QueryOutcome(event_id, records[:spec.max_results], None)


def is_admin():
    """True when running elevated on Windows"""
    if sys.platform != 'win32':
        return False
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


class EventLogAnalyzer:
    def __init__(self, catalog, query_func=None, progress=False):
        self.catalog = catalog
        self.query_func = query_func or query_windows_event_log
        self.progress = progress
        self.results = []
        self.outcomes = []

    def search_event_ids(self, spec, export_csv=False, output_dir='.'):
        """
        Query every requested Event ID, print the matches, the summary and optionally export to CSV.

        Args:
            spec (QuerySpec): what to query
            export_csv (bool): write the collected rows to a timestamped CSV file
            output_dir (str): directory for the CSV file

        Returns:
            list: the collected result rows
        """
        self.results = []
        self.outcomes = []

        print(f"\n{Fore.CYAN}Searching {spec.log_name} log for Event IDs: "
              f"{', '.join(str(eid) for eid in spec.event_ids)}")
        if spec.provider_name:
            print(f"Provider filter: {spec.provider_name}")
        if spec.levels:
            print(f"Level filter: {', '.join(LEVEL_NAMES[lvl] for lvl in sorted(spec.levels))}")
        print(f"Time range: {spec.start_time.strftime(TIMESTAMP_FORMAT)} to now")
        print(f"Max results per Event ID: {spec.max_results}")
        if spec.log_name.lower() == 'security' and sys.platform == 'win32' and not is_admin():
            print(f"{Fore.YELLOW}Warning: Administrator privileges not detected. "
                  f"The Security log usually requires an elevated prompt.")

        event_ids = spec.event_ids
        if self.progress:
            event_ids = tqdm(spec.event_ids, desc='Event IDs', unit='id', leave=False)
        for event_id in event_ids:
            outcome = run_event_query(spec, event_id, self.query_func)
            self.outcomes.append(outcome)
            self._output_outcome(outcome, spec)

        self._output_summary(spec.event_ids)
        if export_csv:
            self.export_csv(output_dir)
        return self.results

    def _process_event(self, record, spec):
        """Project a raw record into a result row and store it"""
        time_created = record.get('time_created')
        if isinstance(time_created, datetime):
            time_created = time_created.strftime(TIMESTAMP_FORMAT)
        provider = record.get('provider_name') or ''
        row = {
            'TimeCreated': time_created or '',
            'EventID': record.get('id'),
            'LogName': record.get('log_name') or spec.log_name,
            'ProviderName': provider,
            'Level': record.get('level_display_name') or LEVEL_NAMES.get(record.get('level'), 'Unknown'),
            'Source': provider,
            'Computer': record.get('machine_name') or '',
            'UserName': record.get('user_id') or 'N/A',
            'Message': (record.get('message') or '').strip(),
        }
        self.results.append(row)
        return row

    def _output_outcome(self, outcome, spec):
        description = self.catalog.describe(outcome.event_id)
        print(f"\n{Fore.CYAN}{'=' * 80}")
        print(f"{Fore.CYAN}{Style.BRIGHT}Event ID {outcome.event_id}: {description}")
        print(f"{Fore.CYAN}{'=' * 80}")

        if not outcome.records:
            print(f"{Fore.YELLOW}No events found for Event ID {outcome.event_id}")
            if not outcome.succeeded:
                print(f"{Style.DIM}  {outcome.error}")
            return

        print(f"Found {len(outcome.records)} event(s)")
        for record in outcome.records:
            row = self._process_event(record, spec)
            self._output_event(row, record.get('properties') or [])

    def _output_event(self, row, properties):
        """Print one result row as a text block"""
        print(f"\n{Fore.CYAN}{Style.BRIGHT}[{row['TimeCreated']}]")
        print(f"  Event ID: {row['EventID']}")
        print(f"  Level:    {level_color(row['Level'])}{row['Level']}{Style.RESET_ALL}")
        print(f"  Provider: {row['ProviderName']}")
        print(f"  Computer: {row['Computer']}")
        if row['UserName'] != 'N/A':
            print(f"  User:     {row['UserName']}")
        print(f"  Message:  {truncate_message(row['Message']) or 'No description available'}")
        values = [str(v) for v in properties if v not in (None, '')]
        if values:
            print("  Properties:")
            for i, value in enumerate(values):
                print(f"    [{i}] {value}")

    def _output_summary(self, event_ids):
        print(f"\n{Fore.CYAN}{'=' * 80}")
        print(f"{Fore.CYAN}{Style.BRIGHT}SUMMARY")
        print(f"{Fore.CYAN}{'=' * 80}")
        for event_id in event_ids:
            count = sum(1 for row in self.results if row['EventID'] == event_id)
            description = self.catalog.describe(event_id)
            color = Fore.GREEN if count else Fore.YELLOW
            print(f"{color}Event ID {event_id} ({description[:50]}...): {count}")
        print(f"{Style.BRIGHT}Total events found: {len(self.results)}")

    def export_csv(self, output_dir='.', now=None):
        """Write the collected rows to EventLog_Analysis_<timestamp>.csv. Returns the path, or None."""
        if not self.results:
            print("No events to export.")
            return None
        stamp = (now or datetime.now()).strftime('%Y%m%d_%H%M%S')
        path = os.path.join(output_dir, f"EventLog_Analysis_{stamp}.csv")
        try:
            os.makedirs(output_dir, exist_ok=True)
            with open(path, 'w', encoding='utf-8-sig', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
                writer.writeheader()
                writer.writerows(self.results)
        except OSError as e:
            print(f"{Fore.RED}Error: Could not write CSV file {path}: {e}")
            return None
        print(f"{Fore.GREEN}Results exported to: {path}")
        return path


# --- User presets -------------------------------------------------------------

def default_presets_path():
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), USER_PRESETS_FILENAME)


def validate_user_presets(data):
    """Validate that data maps preset names to {Description, EventIDs, LogName} objects."""
    if not isinstance(data, dict):
        return False, "Preset file root must be an object mapping names to presets."
    for name, entry in data.items():
        if not name.strip():
            return False, "Preset names cannot be blank."
        if not isinstance(entry, dict):
            return False, f"Preset '{name}' must be an object."
        ids = entry.get('EventIDs')
        if not isinstance(ids, list) or not ids:
            return False, f"Preset '{name}' must have a non-empty EventIDs list."
        for eid in ids:
            if not isinstance(eid, int) or isinstance(eid, bool):
                return False, f"Preset '{name}' contains non-integer event id: {repr(eid)}"
        for key in ('Description', 'LogName', 'ProviderName'):
            if entry.get(key) is not None and not isinstance(entry[key], str):
                return False, f"Preset '{name}' has a non-string {key}."
    return True, None


class UserPresetStore:
    """JSON-backed store of user-defined presets, kept in file order."""

    def __init__(self, path=None):
        self.path = path or default_presets_path()

    def load(self):
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"{Fore.YELLOW}Warning: Could not load user presets from {self.path}: {e}")
            return {}
        ok, err = validate_user_presets(data)
        if not ok:
            print(f"{Fore.YELLOW}Warning: Ignoring user presets in {self.path}: {err}")
            return {}
        presets = {}
        for name, entry in data.items():
            presets[name] = Preset(name, tuple(entry['EventIDs']),
                                   entry.get('LogName') or DEFAULT_LOG_NAME,
                                   entry.get('ProviderName') or None,
                                   entry.get('Description') or '')
        return presets

    def save(self, presets):
        data = {}
        for name, preset in presets.items():
            entry = {
                'Description': preset.description,
                'EventIDs': list(preset.event_ids),
                'LogName': preset.log_name,
            }
            if preset.provider_name:
                entry['ProviderName'] = preset.provider_name
            data[name] = entry
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)


# --- Interactive menu ---------------------------------------------------------

def resolve_menu_choice(choice, user_preset_count):
    """Map raw menu input to a MenuCommand"""
    token = (choice or '').strip()
    if token.upper() == 'Q':
        return MenuCommand(MENU_QUIT, None)
    if token == '1':
        return MenuCommand(MENU_MANUAL, None)
    if token == '2':
        return MenuCommand(MENU_REFERENCE, None)
    if token == '3':
        return MenuCommand(MENU_CREATE_PRESET, None)
    if token in {str(slot) for slot in range(BUILTIN_SLOT_START, USER_SLOT_START)}:
        return MenuCommand(MENU_BUILTIN_PRESET, token)
    if token.isdecimal():
        index = int(token) - USER_SLOT_START
        if 0 <= index < user_preset_count:
            return MenuCommand(MENU_USER_PRESET, index)
    return MenuCommand(MENU_INVALID, token)


class InteractiveMenu:
    def __init__(self, analyzer, catalog, store, log_name=DEFAULT_LOG_NAME, provider_name=None,
                 levels=None, days=DEFAULT_DAYS, max_results=DEFAULT_MAX_RESULTS,
                 export_csv=False, output_dir='.', input_func=None):
        self.analyzer = analyzer
        self.catalog = catalog
        self.store = store
        self.log_name = log_name
        self.provider_name = provider_name
        self.levels = levels
        self.days = days
        self.max_results = max_results
        self.export_csv = export_csv
        self.output_dir = output_dir
        self.input = input_func or input
        self.user_presets = {}

    def run(self):
        self.user_presets = self.store.load()
        try:
            while True:
                spec = self.choose_query()
                if spec is None:
                    break
                self.analyzer.search_event_ids(spec, export_csv=self.export_csv, output_dir=self.output_dir)
                if not self.export_csv and self.analyzer.results:
                    if self._confirm("Export results to CSV? (Y/N): "):
                        self.analyzer.export_csv(self.output_dir)
                if not self._confirm("\nRun another analysis? (Y/N): "):
                    break
        except (EOFError, KeyboardInterrupt):
            print()
        print("Exiting.")

    def choose_query(self):
        """Show the menu until the user picks a query (returns a QuerySpec) or quits (returns None)."""
        while True:
            self.show_menu()
            command = resolve_menu_choice(self.input("Select an option: "), len(self.user_presets))
            if command.kind == MENU_QUIT:
                return None
            if command.kind == MENU_MANUAL:
                return self._manual_entry()
            if command.kind == MENU_REFERENCE:
                self.show_reference()
            elif command.kind == MENU_CREATE_PRESET:
                self.create_preset()
            elif command.kind == MENU_BUILTIN_PRESET:
                return self._spec_from_preset(self.catalog.preset_by_key(command.value))
            elif command.kind == MENU_USER_PRESET:
                return self._spec_from_preset(list(self.user_presets.values())[command.value])
            else:
                print(f"{Fore.RED}Invalid choice: '{command.value}'. Please try again.")

    def show_menu(self):
        print(f"\n{Fore.CYAN}{'=' * 60}")
        print(f"{Fore.CYAN}{Style.BRIGHT}  Windows Event Log Analyzer")
        print(f"{Fore.CYAN}{'=' * 60}")
        print("  1. Enter Event ID(s) manually")
        print("  2. View Event ID reference links")
        print("  3. Create a custom preset")
        print(f"\n{Style.BRIGHT}  Built-in presets:")
        for slot, preset in enumerate(self.catalog.presets, start=BUILTIN_SLOT_START):
            print(f"  {slot}. {preset.name} ({preset.log_name}) - {preset.description}")
        if self.user_presets:
            print(f"\n{Style.BRIGHT}  User presets:")
            for slot, preset in enumerate(self.user_presets.values(), start=USER_SLOT_START):
                ids = ', '.join(str(eid) for eid in preset.event_ids)
                print(f"  {slot}. {preset.name} ({preset.log_name}) - {preset.description or ids}")
        print("\n  Q. Quit")

    def show_reference(self):
        print(f"\n{Style.BRIGHT}Event ID reference:")
        for title, url in REFERENCE_LINKS:
            print(f"  {title}")
            print(f"    {Fore.BLUE}{url}")

    def create_preset(self):
        name = self.input("Preset name: ").strip()
        if not name:
            print(f"{Fore.YELLOW}Preset name cannot be empty. Returning to menu.")
            return None
        description = self.input("Description: ").strip()
        event_ids = self._prompt_event_ids("Event ID(s) (comma-separated): ")
        log_name = self.input(f"Log name [{DEFAULT_LOG_NAME}]: ").strip() or DEFAULT_LOG_NAME
        preset = Preset(name, tuple(event_ids), log_name, None, description)

        presets = dict(self.user_presets)
        presets[name] = preset
        try:
            self.store.save(presets)
        except OSError as e:
            print(f"{Fore.RED}Error: Could not save preset to {self.store.path}: {e}")
            return None
        self.user_presets = presets
        print(f"{Fore.GREEN}Preset '{name}' saved to {self.store.path}")
        return preset

    def _manual_entry(self):
        event_ids = self._prompt_event_ids("Enter Event ID(s) (comma-separated): ")
        log_name = self.input(f"Log name [{self.log_name}]: ").strip() or self.log_name
        days = self._prompt_positive_int(f"Days to look back [{self.days}]: ", self.days)
        return make_query_spec(event_ids, log_name, self.provider_name, self.levels,
                               days, self.max_results)

    def _spec_from_preset(self, preset):
        print(f"{Fore.GREEN}Using preset: {preset.name}")
        return make_query_spec(preset.event_ids, preset.log_name or self.log_name,
                               preset.provider_name or self.provider_name, self.levels,
                               self.days, self.max_results)

    def _prompt_event_ids(self, prompt):
        while True:
            try:
                return parse_event_id_list(self.input(prompt))
            except ValueError as e:
                print(f"{Fore.RED}{e}. Please try again.")

    def _prompt_positive_int(self, prompt, default):
        while True:
            text = self.input(prompt).strip()
            if not text:
                return default
            if text.isdecimal() and int(text) > 0:
                return int(text)
            print(f"{Fore.RED}'{text}' is not a positive whole number. Please try again.")

    def _confirm(self, prompt):
        return self.input(prompt).strip().upper() == 'Y'


# --- Command line -------------------------------------------------------------

def show_banner():
    print("")
    print(f"{Fore.MAGENTA}{Style.BRIGHT}  Windows Event Log Analyzer v{__version__}")
    print(f"{Fore.MAGENTA}  Query event logs by Event ID, provider and level")
    print("")


def show_presets(catalog, user_presets=None):
    print(f"{Style.BRIGHT}Built-in presets:")
    for slot, preset in enumerate(catalog.presets, start=BUILTIN_SLOT_START):
        print(f"\n  {Fore.CYAN}{slot}. {preset.name}{Style.RESET_ALL} - {preset.description}")
        print(f"      Log: {preset.log_name}")
        if preset.provider_name:
            print(f"      Provider: {preset.provider_name}")
        print(f"      Event IDs: {', '.join(str(eid) for eid in preset.event_ids)}")
    if user_presets:
        print(f"\n{Style.BRIGHT}User presets:")
        for slot, preset in enumerate(user_presets.values(), start=USER_SLOT_START):
            print(f"\n  {Fore.CYAN}{slot}. {preset.name}{Style.RESET_ALL} - {preset.description}")
            print(f"      Log: {preset.log_name}")
            print(f"      Event IDs: {', '.join(str(eid) for eid in preset.event_ids)}")


def _argparse_type(parse):
    def convert(text):
        try:
            return parse(text)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))
    return convert


def _positive_int(text):
    value = int(text)
    if value <= 0:
        raise ValueError(f"{value} is not a positive integer")
    return value


def build_parser():
    parser = argparse.ArgumentParser(
        prog='eventlog-analyzer',
        description='Windows Event Log analyzer: query event logs by Event ID')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--event-id', dest='event_ids', action='extend',
                      type=_argparse_type(parse_event_id_list), metavar='ID[,ID...]',
                      help='Event ID(s) to search for; runs one analysis and exits')
    mode.add_argument('--preset', type=str,
                      help='Run a built-in preset (slot number or name) or a saved user preset and exit')
    mode.add_argument('--show-presets', action='store_true',
                      help='List the available presets and exit')
    parser.add_argument('--log-name', type=str, default=None,
                        help=f'Event log to search (default: {DEFAULT_LOG_NAME})')
    parser.add_argument('--provider', type=str, dest='provider_name',
                        help='Only return events from this provider')
    parser.add_argument('--days', type=_argparse_type(_positive_int), default=DEFAULT_DAYS,
                        help=f'Days to look back (default: {DEFAULT_DAYS})')
    parser.add_argument('--level', dest='levels', type=_argparse_type(parse_level_list),
                        metavar='1-5[,1-5...]',
                        help='Severity levels: 1 Critical, 2 Error, 3 Warning, 4 Information, 5 Verbose')
    parser.add_argument('--max-results', type=_argparse_type(_positive_int), default=DEFAULT_MAX_RESULTS,
                        help=f'Maximum events returned per Event ID (default: {DEFAULT_MAX_RESULTS})')
    parser.add_argument('--export-csv', action='store_true',
                        help='Export results to EventLog_Analysis_<timestamp>.csv')
    parser.add_argument('--output-dir', type=str, default='.',
                        help='Directory for CSV exports (default: current directory)')
    parser.add_argument('--presets-file', type=str,
                        help=f'User preset file (default: {USER_PRESETS_FILENAME} beside this program)')
    parser.add_argument('--progress', action='store_true',
                        help='Show a progress bar while querying Event IDs')
    parser.add_argument('--no-banner', action='store_true',
                        help='Do not print the startup banner')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    colorama_init(autoreset=True)

    if not args.no_banner:
        show_banner()

    catalog = get_default_catalog()
    store = UserPresetStore(args.presets_file)

    if args.show_presets:
        show_presets(catalog, store.load())
        return 0

    analyzer = EventLogAnalyzer(catalog, progress=args.progress)
    log_name = args.log_name or DEFAULT_LOG_NAME

    if args.preset:
        preset = catalog.preset_by_key(args.preset) or store.load().get(args.preset)
        if preset is None:
            print(f"{Fore.RED}Error: Preset '{args.preset}' not recognized. Use --show-presets to list presets.")
            return 2
        spec = make_query_spec(preset.event_ids, args.log_name or preset.log_name,
                               args.provider_name or preset.provider_name, args.levels,
                               args.days, args.max_results)
        analyzer.search_event_ids(spec, export_csv=args.export_csv, output_dir=args.output_dir)
        return 0

    if args.event_ids:
        event_ids = list(dict.fromkeys(args.event_ids))
        spec = make_query_spec(event_ids, log_name, args.provider_name, args.levels,
                               args.days, args.max_results)
        analyzer.search_event_ids(spec, export_csv=args.export_csv, output_dir=args.output_dir)
        return 0

    menu = InteractiveMenu(analyzer, catalog, store, log_name=log_name,
                           provider_name=args.provider_name, levels=args.levels,
                           days=args.days, max_results=args.max_results,
                           export_csv=args.export_csv, output_dir=args.output_dir)
    menu.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
