from datetime import datetime, time
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from medcenter.models.appointment import Appointment
from medcenter.routes.specialist_routes import ensure_can_edit_schedule
from medcenter.scheduling.slots import SCHEDULE_CONFLICT_MESSAGE
from medcenter.scheduling.store import load_breaks

MONDAY = '2026-01-05'
SUNDAY = '2026-01-04'


def schedule_url(clinic, suffix: str = 'schedule', tenant_id: int = 1) -> str:
    return f'/specialists/{tenant_id}/specialists/{clinic.specialist.id}/{suffix}'


def weekly_payload() -> dict:
    return {
        'schedules': [
            {'day_of_week': 1, 'start_time': '09:00', 'end_time': '12:00', 'is_available': True},
            {'day_of_week': 3, 'start_time': '14:00', 'end_time': '18:00', 'is_available': True},
            {'day_of_week': 5, 'start_time': '09:00', 'end_time': '13:00', 'is_available': False},
        ],
        'breaks': [
            {'day_of_week': 1, 'start_time': '10:00', 'end_time': '10:30', 'description': 'Coffee'},
        ],
    }


def test_ensure_can_edit_schedule_rejects_other_specialist() -> None:
    other = SimpleNamespace(id=2, role='Especialista', is_admin=False)

    with pytest.raises(HTTPException) as exception_info:
        ensure_can_edit_schedule(other, specialist_id=1)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the specialist or an administrator can change this schedule.'


def test_get_schedule_is_empty_before_first_save(api_client, clinic, auth_headers) -> None:
    response = api_client.get(schedule_url(clinic), headers=auth_headers(clinic.patient))

    assert response.status_code == 200
    assert response.json() == {'success': True, 'message': None, 'data': {'schedules': [], 'breaks': []}}


def test_update_schedule_stores_only_available_days(api_client, clinic, auth_headers) -> None:
    response = api_client.put(schedule_url(clinic), json=weekly_payload(), headers=auth_headers(clinic.specialist))

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['message'] == 'Availability updated.'
    assert [item['day_of_week'] for item in body['data']['schedules']] == [1, 3]
    assert body['data']['breaks'][0]['description'] == 'Coffee'

    stored = api_client.get(schedule_url(clinic), headers=auth_headers(clinic.admin)).json()['data']
    assert [(item['day_of_week'], item['start_time']) for item in stored['schedules']] == [
        (1, '09:00:00'),
        (3, '14:00:00'),
    ]


def test_update_schedule_replaces_previous_set(api_client, clinic, auth_headers) -> None:
    headers = auth_headers(clinic.admin)
    api_client.put(schedule_url(clinic), json=weekly_payload(), headers=headers)

    replacement = {
        'schedules': [{'day_of_week': 2, 'start_time': '08:00', 'end_time': '11:00'}],
        'breaks': [],
    }
    response = api_client.put(schedule_url(clinic), json=replacement, headers=headers)

    assert response.status_code == 200
    stored = api_client.get(schedule_url(clinic), headers=headers).json()['data']
    assert [item['day_of_week'] for item in stored['schedules']] == [2]
    assert stored['breaks'] == []


def test_conflicting_schedule_is_rejected_without_partial_save(api_client, clinic, auth_headers) -> None:
    headers = auth_headers(clinic.specialist)
    api_client.put(schedule_url(clinic), json=weekly_payload(), headers=headers)

    conflicting = weekly_payload()
    conflicting['schedules'][0]['start_time'] = '08:00'
    conflicting['breaks'].append({'day_of_week': 3, 'start_time': '17:30', 'end_time': '18:30'})
    response = api_client.put(schedule_url(clinic), json=conflicting, headers=headers)

    assert response.status_code == 400
    assert response.json() == {'success': False, 'message': SCHEDULE_CONFLICT_MESSAGE, 'data': None}

    stored = api_client.get(schedule_url(clinic), headers=headers).json()['data']
    assert stored['schedules'][0]['start_time'] == '09:00:00'
    assert len(stored['breaks']) == 1


def test_update_schedule_rejects_invalid_weekday(api_client, clinic, auth_headers) -> None:
    payload = {'schedules': [{'day_of_week': 7, 'start_time': '09:00', 'end_time': '12:00'}], 'breaks': []}

    response = api_client.put(schedule_url(clinic), json=payload, headers=auth_headers(clinic.specialist))

    assert response.status_code == 422
    assert response.json()['success'] is False


@pytest.mark.parametrize('editor', ['patient', 'other_specialist'])
def test_update_schedule_requires_owner_or_admin(api_client, clinic, auth_headers, editor: str) -> None:
    response = api_client.put(
        schedule_url(clinic),
        json=weekly_payload(),
        headers=auth_headers(getattr(clinic, editor)),
    )

    assert response.status_code == 403


def test_schedule_of_another_center_is_forbidden(api_client, clinic, auth_headers) -> None:
    response = api_client.get(schedule_url(clinic), headers=auth_headers(clinic.outsider))

    assert response.status_code == 403
    assert response.json()['message'] == 'You do not have access to this medical center.'


def test_unknown_specialist_returns_not_found(api_client, clinic, auth_headers) -> None:
    response = api_client.get('/specialists/1/specialists/999/schedule', headers=auth_headers(clinic.admin))

    assert response.status_code == 404
    assert response.json()['message'] == 'Specialist not found.'


def test_get_breaks_filters_by_weekday(api_client, monday_schedule, auth_headers) -> None:
    clinic = monday_schedule
    headers = auth_headers(clinic.patient)

    monday = api_client.get(schedule_url(clinic, 'breaks'), params={'day_of_week': 1}, headers=headers)
    tuesday = api_client.get(schedule_url(clinic, 'breaks'), params={'day_of_week': 2}, headers=headers)

    assert [item['start_time'] for item in monday.json()['data']] == ['10:00:00']
    assert tuesday.json()['data'] == []


def test_available_slots_worked_example(api_client, db_session, monday_schedule, auth_headers) -> None:
    clinic = monday_schedule
    db_session.add(Appointment(
        tenant_id=1,
        patient_id=clinic.patient.id,
        specialist_id=clinic.specialist.id,
        date=datetime(2026, 1, 5, 11, 0),
        reason='Control',
        status='confirmada',
    ))
    db_session.commit()

    response = api_client.get(
        schedule_url(clinic, 'available-slots'),
        params={'date': MONDAY},
        headers=auth_headers(clinic.patient),
    )

    assert response.status_code == 200
    assert response.json()['data'] == {
        'date': MONDAY,
        'available_slots': ['09:00', '09:30', '10:30', '11:30'],
        'reason': None,
    }


def test_available_slots_on_day_without_schedule(api_client, monday_schedule, auth_headers) -> None:
    response = api_client.get(
        schedule_url(monday_schedule, 'available-slots'),
        params={'date': SUNDAY},
        headers=auth_headers(monday_schedule.admin),
    )

    assert response.json()['data'] == {'date': SUNDAY, 'available_slots': [], 'reason': 'no schedule for this day'}


def test_available_slots_requires_a_valid_date(api_client, monday_schedule, auth_headers) -> None:
    response = api_client.get(
        schedule_url(monday_schedule, 'available-slots'),
        params={'date': 'next monday'},
        headers=auth_headers(monday_schedule.admin),
    )

    assert response.status_code == 422
    assert response.json()['success'] is False
    assert response.json()['message'].startswith('query.date')


@pytest.mark.parametrize(
    ('slot_time', 'expected'),
    [
        ('09:00', {'available': True, 'reason': None}),
        ('10:00', {'available': False, 'reason': 'falls within a break'}),
        ('12:00', {'available': False, 'reason': 'outside working hours'}),
        ('09:10', {'available': False, 'reason': 'not aligned to the slot step'}),
    ],
)
def test_check_availability(api_client, monday_schedule, auth_headers, slot_time: str, expected: dict) -> None:
    response = api_client.get(
        schedule_url(monday_schedule, 'availability'),
        params={'date': MONDAY, 'time': slot_time},
        headers=auth_headers(monday_schedule.specialist),
    )

    assert response.status_code == 200
    assert response.json()['data'] == expected


def test_schedule_requires_authentication(api_client, clinic) -> None:
    response = api_client.get(schedule_url(clinic))

    assert response.status_code in (401, 403)
    assert response.json()['success'] is False


def test_schedule_rejects_invalid_token(api_client, clinic) -> None:
    response = api_client.get(schedule_url(clinic), headers={'Authorization': 'Bearer not-a-token'})

    assert response.status_code == 401
    assert response.json()['message'] == 'Invalid token'


def test_breaks_time_column_round_trips(db_session, monday_schedule) -> None:
    breaks = load_breaks(db_session, 1, monday_schedule.specialist.id)

    assert [(item.start_time, item.end_time) for item in breaks] == [(time(10, 0), time(10, 30))]
