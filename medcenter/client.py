"""HTTP client for the medical center API.

Mirrors what the dashboards do: list bookable slots for a specialist and
date, re-check the chosen slot right before submitting, guard against double
submits, and report every outcome through a notification queue instead of
raising to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from threading import Lock
from typing import Any, Optional

import httpx

from medcenter.core import config
from medcenter.notifications import NotificationQueue
from medcenter.scheduling.cache import SlotCache
from medcenter.scheduling.slots import (
    AvailabilityResult,
    ScheduleConflictError,
    SlotListing,
    format_time,
    parse_time,
    validate_schedule_set,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'Could not connect to the server.'
AVAILABILITY_UNVERIFIED = 'availability could not be verified'


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ApiResult:
    success: bool
    message: Optional[str] = None
    data: Any = None


@dataclass
class _Entry:
    """Attribute view over a schedule or break dict, for local validation."""
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True


def _to_time(value) -> time:
    return value if isinstance(value, time) else parse_time(str(value))


def _as_entry(item: dict) -> _Entry:
    return _Entry(
        day_of_week=int(item['day_of_week']),
        start_time=_to_time(item['start_time']),
        end_time=_to_time(item['end_time']),
        is_available=bool(item.get('is_available', True)),
    )


def _serialize_entry(item: dict) -> dict:
    payload = dict(item)
    for key in ('start_time', 'end_time'):
        if isinstance(payload.get(key), time):
            payload[key] = format_time(payload[key])
    return payload


def _parse_datetime(value) -> datetime:
    return value if isinstance(value, datetime) else datetime.fromisoformat(str(value))


class MedCenterClient:
    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        notifier: Optional[NotificationQueue] = None,
        slot_cache: Optional[SlotCache] = None,
        timeout: float = config.API_TIMEOUT_SECONDS,
    ):
        self.token = token
        self.http = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self.notifier = notifier if notifier is not None else NotificationQueue()
        self.slot_cache = slot_cache if slot_cache is not None else SlotCache()
        self._creating = False
        self._creating_lock = Lock()

    @property
    def creating(self) -> bool:
        return self._creating

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _headers(self) -> dict:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _request(self, method: str, path: str, params: Optional[dict] = None, json: Any = None) -> ApiResult:
        """Send one request and unwrap the ``{success, message, data}`` envelope.

        Raises ``ApiError`` for transport failures, non-2xx answers and
        envelopes with ``success: false``.
        """
        logger.debug('%s %s params=%s', method, path, params)
        try:
            response = self.http.request(method, path, params=params, json=json, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error('Request error for %s %s: %s', method, path, exc)
            raise ApiError(GENERIC_ERROR_MESSAGE) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {'data': body}

        if response.is_error or body.get('success') is False:
            message = body.get('message') or f'Request failed with status {response.status_code}.'
            logger.error('API error %s for %s %s: %s', response.status_code, method, path, message)
            raise ApiError(message, status_code=response.status_code)

        return ApiResult(success=True, message=body.get('message'), data=body.get('data'))

    def login(self, email: str, password: str) -> Optional[dict]:
        try:
            result = self._request('POST', '/auth/login', json={'email': email, 'password': password})
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        self.token = result.data['access_token']
        return result.data['user']

    # Users

    def create_user(
        self,
        tenant_id: int,
        email: str,
        password: str,
        name: str,
        role: str,
        specialty: Optional[str] = None,
        identification_number: Optional[str] = None,
    ) -> Optional[dict]:
        payload = {
            'email': email,
            'password': password,
            'name': name,
            'role': role,
            'specialty': specialty,
            'identification_number': identification_number,
        }
        try:
            result = self._request('POST', f'/users/{tenant_id}', json=payload)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        self.notifier.success(result.message or 'User created.')
        return result.data

    def _list_users(self, tenant_id: int, kind: str) -> Optional[list]:
        try:
            result = self._request('GET', f'/users/{tenant_id}/{kind}')
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def list_specialists(self, tenant_id: int) -> Optional[list]:
        return self._list_users(tenant_id, 'specialists')

    def list_patients(self, tenant_id: int) -> Optional[list]:
        return self._list_users(tenant_id, 'patients')

    # Schedules

    def get_schedule(self, tenant_id: int, specialist_id: int) -> Optional[dict]:
        try:
            result = self._request('GET', f'/specialists/{tenant_id}/specialists/{specialist_id}/schedule')
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def get_breaks(self, tenant_id: int, specialist_id: int, day_of_week: Optional[int] = None) -> Optional[list]:
        params = {'day_of_week': day_of_week} if day_of_week is not None else None
        try:
            result = self._request('GET', f'/specialists/{tenant_id}/specialists/{specialist_id}/breaks', params=params)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def update_schedule(self, tenant_id: int, specialist_id: int, schedules: list[dict], breaks: list[dict]) -> bool:
        active = [item for item in schedules if item.get('is_available', True)]
        try:
            validate_schedule_set([_as_entry(item) for item in active], [_as_entry(item) for item in breaks])
        except (ScheduleConflictError, KeyError, ValueError) as exc:
            logger.warning('Schedule for specialist %s not sent: %s', specialist_id, getattr(exc, 'conflicts', exc))
            self.notifier.error(str(exc) if isinstance(exc, ScheduleConflictError) else 'Invalid schedule data.')
            return False

        payload = {
            'schedules': [_serialize_entry(item) for item in active],
            'breaks': [_serialize_entry(item) for item in breaks],
        }
        try:
            self._request('PUT', f'/specialists/{tenant_id}/specialists/{specialist_id}/schedule', json=payload)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return False

        self.slot_cache.invalidate(tenant_id, specialist_id)
        self.notifier.success('Availability updated.')
        return True

    # Slots

    def get_available_slots(self, tenant_id: int, specialist_id: int, target: date, use_cache: bool = True) -> SlotListing:
        """Bookable start times for one day.

        A failed fetch yields an empty listing with ``failed`` set, so callers
        can tell it apart from a day that truly has no slots.
        """
        key = (tenant_id, specialist_id, target)
        if use_cache:
            cached = self.slot_cache.get(key)
            if cached is not None:
                return cached

        try:
            result = self._request(
                'GET',
                f'/specialists/{tenant_id}/specialists/{specialist_id}/available-slots',
                params={'date': target.isoformat()},
            )
        except ApiError as exc:
            self.notifier.error(exc.message)
            return SlotListing(date=target, failed=True)

        listing = SlotListing(
            date=target,
            slots=[parse_time(label) for label in result.data.get('available_slots', [])],
            reason=result.data.get('reason'),
        )
        self.slot_cache.set(key, listing)
        return listing

    def check_availability(
        self,
        tenant_id: int,
        specialist_id: int,
        target: date,
        slot_time: time,
        exclude_appointment_id: Optional[int] = None,
    ) -> AvailabilityResult:
        params = {'date': target.isoformat(), 'time': format_time(slot_time)}
        if exclude_appointment_id is not None:
            params['exclude_appointment_id'] = exclude_appointment_id
        try:
            result = self._request(
                'GET',
                f'/specialists/{tenant_id}/specialists/{specialist_id}/availability',
                params=params,
            )
        except ApiError as exc:
            self.notifier.error(exc.message)
            return AvailabilityResult(available=False, reason=AVAILABILITY_UNVERIFIED)
        return AvailabilityResult(available=bool(result.data['available']), reason=result.data.get('reason'))

    # Appointments

    def list_appointments(self, tenant_id: Optional[int] = None, **filters) -> Optional[list]:
        """Tenant-wide list when ``tenant_id`` is given (administrators), else the caller's own."""
        path = f'/appointments/{tenant_id}/all' if tenant_id is not None else '/appointments'
        params = {key: value for key, value in filters.items() if value is not None} or None
        try:
            result = self._request('GET', path, params=params)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def list_patient_appointments(self) -> Optional[list]:
        try:
            result = self._request('GET', '/appointments/patient')
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def get_appointment(self, appointment_id: int) -> Optional[dict]:
        try:
            result = self._request('GET', f'/appointments/appointments/{appointment_id}')
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data

    def _invalidate_for(self, appointment: dict) -> None:
        self.slot_cache.invalidate(
            appointment['tenant_id'],
            appointment['specialist_id'],
            _parse_datetime(appointment['date']).date(),
        )

    def create_appointment(
        self,
        tenant_id: int,
        patient_id: int,
        specialist_id: int,
        start: datetime,
        reason: str,
        notes: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Optional[dict]:
        with self._creating_lock:
            if self._creating:
                self.notifier.info('An appointment is already being created.')
                return None
            self._creating = True

        try:
            availability = self.check_availability(tenant_id, specialist_id, start.date(), start.time())
            if not availability.available:
                if availability.reason != AVAILABILITY_UNVERIFIED:
                    self.notifier.error(f'The selected time is not available: {availability.reason}.')
                return None

            payload = {
                'patient_id': patient_id,
                'specialist_id': specialist_id,
                'date': start.isoformat(),
                'reason': reason,
                'notes': notes,
            }
            if status is not None:
                payload['status'] = status
            try:
                result = self._request('POST', f'/appointments/{tenant_id}/appointments', json=payload)
            except ApiError as exc:
                self.notifier.error(exc.message)
                return None

            self.slot_cache.invalidate(tenant_id, specialist_id, start.date())
            self.notifier.success(result.message or 'Appointment created.')
            return result.data
        finally:
            with self._creating_lock:
                self._creating = False

    def update_appointment(self, appointment_id: int, **changes) -> Optional[dict]:
        current = self.get_appointment(appointment_id)
        if current is None:
            return None

        new_start = changes.get('date')
        new_specialist_id = changes.get('specialist_id') or current['specialist_id']
        if new_start is not None or new_specialist_id != current['specialist_id']:
            new_start = _parse_datetime(new_start) if new_start is not None else _parse_datetime(current['date'])
            availability = self.check_availability(
                current['tenant_id'],
                new_specialist_id,
                new_start.date(),
                new_start.time(),
                exclude_appointment_id=appointment_id,
            )
            if not availability.available:
                if availability.reason != AVAILABILITY_UNVERIFIED:
                    self.notifier.error(f'The selected time is not available: {availability.reason}.')
                return None

        payload = {key: value.isoformat() if isinstance(value, datetime) else value for key, value in changes.items()}
        try:
            result = self._request('PUT', f'/appointments/appointments/{appointment_id}', json=payload)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None

        self._invalidate_for(current)
        self._invalidate_for(result.data)
        self.notifier.success(result.message or 'Appointment updated.')
        return result.data

    def update_appointment_status(self, appointment_id: int, status: str) -> Optional[dict]:
        try:
            result = self._request(
                'PUT',
                f'/appointments/appointments/{appointment_id}/status',
                json={'status': status},
            )
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None

        self._invalidate_for(result.data)
        self.notifier.success(result.message or 'Appointment status updated.')
        return result.data

    def delete_appointment(self, appointment_id: int) -> bool:
        current = self.get_appointment(appointment_id)
        if current is None:
            return False
        try:
            result = self._request('DELETE', f'/appointments/appointments/{appointment_id}')
        except ApiError as exc:
            self.notifier.error(exc.message)
            return False

        self._invalidate_for(current)
        self.notifier.success(result.message or 'Appointment deleted.')
        return True

    def get_dashboard_summary(self, tenant_id: int, specialist_id: Optional[int] = None) -> Optional[dict]:
        params = {'specialist_id': specialist_id} if specialist_id is not None else None
        try:
            result = self._request('GET', f'/dashboard/{tenant_id}/summary', params=params)
        except ApiError as exc:
            self.notifier.error(exc.message)
            return None
        return result.data
