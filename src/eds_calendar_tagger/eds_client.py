"""
Evolution Data Server calendar store.

Events are read and written as libical-glib components.  The tagger's private
extension fields are kept as ``X-EDS-TAGGER-<key>`` properties on the VEVENT;
every GLib error is reported as CalendarUnavailableError so callers never
depend on ``gi``.
"""

import logging
from typing import Optional, Tuple

import gi
gi.require_version('EDataServer', '1.2')
gi.require_version('ECal', '2.0')
gi.require_version('ICalGLib', '3.0')
from gi.repository import EDataServer, ECal, ICalGLib, GLib

from .models import Attendee, CalendarUnavailableError, EventRecord

logger = logging.getLogger(__name__)

X_PREFIX = "X-EDS-TAGGER-"


def _vevent(comp: ICalGLib.Component) -> Optional[ICalGLib.Component]:
    """Return the VEVENT itself or the first VEVENT inside a VCALENDAR."""
    if comp.isa() == ICalGLib.ComponentKind.VCALENDAR_COMPONENT:
        return comp.get_first_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
    if comp.isa() == ICalGLib.ComponentKind.VEVENT_COMPONENT:
        return comp
    return None


def _parse_component(ical: str) -> ICalGLib.Component:
    comp = ICalGLib.Component.new_from_string(ical)
    if comp is None:
        raise CalendarUnavailableError("Calendar object is not valid iCalendar")
    return comp


def _private_props(vevent: ICalGLib.Component) -> list:
    """Collect this tool's X- properties (safe to remove afterwards)."""
    found = []
    prop = vevent.get_first_property(ICalGLib.PropertyKind.X_PROPERTY)
    while prop:
        name = prop.get_x_name() or ''
        if name.upper().startswith(X_PREFIX):
            found.append(prop)
        prop = vevent.get_next_property(ICalGLib.PropertyKind.X_PROPERTY)
    return found


def record_from_component(comp: ICalGLib.Component) -> EventRecord:
    """Build an EventRecord from a VEVENT (or a VCALENDAR holding one)."""
    vevent = _vevent(comp)
    if vevent is None:
        raise CalendarUnavailableError("Calendar object contains no VEVENT")

    attendees = []
    prop = vevent.get_first_property(ICalGLib.PropertyKind.ATTENDEE_PROPERTY)
    while prop:
        address = prop.get_attendee() or ''
        if address.lower().startswith('mailto:'):
            address = address[len('mailto:'):]
        attendees.append(Attendee(email=address or None))
        prop = vevent.get_next_property(ICalGLib.PropertyKind.ATTENDEE_PROPERTY)

    private = {}
    for prop in _private_props(vevent):
        key = prop.get_x_name()[len(X_PREFIX):]
        private[key] = prop.get_x() or prop.get_value_as_string() or ''

    return EventRecord(
        event_id=vevent.get_uid(),
        summary=vevent.get_summary(),
        attendees=attendees,
        private=private,
        ical=vevent.as_ical_string(),
    )


def apply_record(comp: ICalGLib.Component, record: EventRecord) -> ICalGLib.Component:
    """Write the record's summary and private fields onto ``comp`` in place."""
    vevent = _vevent(comp)
    if vevent is None:
        raise CalendarUnavailableError("Calendar object contains no VEVENT")

    if record.summary is not None:
        vevent.set_summary(record.summary)

    # Replace wholesale: drop every field we own, then write the record's set
    for prop in _private_props(vevent):
        vevent.remove_property(prop)
    for key, value in record.private.items():
        prop = ICalGLib.Property.new_x(value)
        prop.set_x_name(f"{X_PREFIX}{key}")
        vevent.add_property(prop)
    return comp


def list_calendars() -> list[Tuple[str, str, str]]:
    """
    List calendars known to EDS.

    Returns:
        List of (display_name, account_name, uid)
    """
    try:
        registry = EDataServer.SourceRegistry.new_sync(None)
    except GLib.Error as e:
        raise CalendarUnavailableError(f"EDS registry unreachable: {e.message}")

    entries = []
    for source in registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR):
        account = ""
        parent = source.get_parent()
        if parent:
            parent_source = registry.ref_source(parent)
            if parent_source:
                account = parent_source.get_display_name() or ""
        entries.append((source.get_display_name() or "(unnamed)", account, source.get_uid()))
    return entries


class EDSCalendarStore:
    """Remote calendar store over EDS, one client connection per calendar."""

    def __init__(self, registry: Optional[EDataServer.SourceRegistry] = None, timeout: int = 10):
        self.registry = registry
        self.timeout = timeout
        self.clients: dict[str, ECal.Client] = {}

    def _client(self, calendar_uid: str) -> ECal.Client:
        if calendar_uid in self.clients:
            return self.clients[calendar_uid]

        try:
            if self.registry is None:
                self.registry = EDataServer.SourceRegistry.new_sync(None)
            source = self.registry.ref_source(calendar_uid)
            if not source:
                raise CalendarUnavailableError(
                    f"Calendar with UID '{calendar_uid}' not found in EDS"
                )
            client = ECal.Client.connect_sync(
                source,
                ECal.ClientSourceType.EVENTS,
                self.timeout,
                None
            )
        except GLib.Error as e:
            raise CalendarUnavailableError(
                f"Failed to connect to calendar {calendar_uid}: {e.message}"
            )

        logger.debug(f"Connected to calendar {calendar_uid}")
        self.clients[calendar_uid] = client
        return client

    def _fetch(self, calendar_uid: str, event_uid: str) -> ICalGLib.Component:
        client = self._client(calendar_uid)
        try:
            success, icalcomp = client.get_object_sync(event_uid, None, None)
        except GLib.Error as e:
            raise CalendarUnavailableError(f"Failed to fetch event {event_uid}: {e.message}")
        if not success or not icalcomp:
            raise CalendarUnavailableError(f"Event {event_uid} not found")
        # Handle both string and Component returns
        if isinstance(icalcomp, str):
            return _parse_component(icalcomp)
        return icalcomp

    def get_event(self, calendar_id: str, event_id: str) -> EventRecord:
        """Fetch an event; raises CalendarUnavailableError when it cannot be read."""
        return record_from_component(self._fetch(calendar_id, event_id))

    def update_event(self, record: EventRecord, calendar_id: str, event_id: str) -> EventRecord:
        """Write summary and private fields back, returning the record as written."""
        if record.ical:
            comp = _parse_component(record.ical)
        else:
            comp = self._fetch(calendar_id, event_id)
        apply_record(comp, record)

        client = self._client(calendar_id)
        try:
            success = client.modify_object_sync(
                comp,
                ECal.ObjModType.THIS,
                ECal.OperationFlags.NONE,
                None
            )
        except GLib.Error as e:
            raise CalendarUnavailableError(f"Failed to modify event {event_id}: {e.message}")
        if not success:
            raise CalendarUnavailableError(f"Failed to modify event {event_id}")

        logger.debug(f"Updated event {event_id} in {calendar_id}")
        return record_from_component(comp)
