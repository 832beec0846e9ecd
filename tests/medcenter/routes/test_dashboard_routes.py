from datetime import datetime, timedelta

from medcenter.models.appointment import Appointment


def add_appointment(db_session, clinic, start: datetime, status: str = 'pendiente', specialist=None) -> Appointment:
    appointment = Appointment(
        tenant_id=1,
        patient_id=clinic.patient.id,
        specialist_id=(specialist or clinic.specialist).id,
        date=start.replace(second=0, microsecond=0),
        reason='Control',
        status=status,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


def test_summary_counts_every_status(api_client, db_session, clinic, auth_headers) -> None:
    next_week = datetime.now() + timedelta(days=7)
    add_appointment(db_session, clinic, next_week)
    add_appointment(db_session, clinic, next_week + timedelta(hours=1), 'confirmada')
    add_appointment(db_session, clinic, next_week + timedelta(hours=2), 'cancelada')
    add_appointment(db_session, clinic, next_week, specialist=clinic.other_specialist)

    response = api_client.get('/dashboard/1/summary', headers=auth_headers(clinic.admin))

    assert response.status_code == 200
    data = response.json()['data']
    assert data['total'] == 4
    assert data['by_status'] == {'pendiente': 2, 'confirmada': 1, 'completada': 0, 'cancelada': 1}
    assert len(data['upcoming']) == 3
    assert all(item['status'] != 'cancelada' for item in data['upcoming'])


def test_specialist_only_sees_own_summary(api_client, db_session, clinic, auth_headers) -> None:
    next_week = datetime.now() + timedelta(days=7)
    add_appointment(db_session, clinic, next_week)
    add_appointment(db_session, clinic, next_week, specialist=clinic.other_specialist)

    response = api_client.get(
        '/dashboard/1/summary',
        params={'specialist_id': clinic.other_specialist.id},
        headers=auth_headers(clinic.specialist),
    )

    data = response.json()['data']
    assert data['total'] == 1
    assert data['upcoming'][0]['specialist_id'] == clinic.specialist.id


def test_upcoming_is_limited_and_sorted(api_client, db_session, clinic, auth_headers) -> None:
    start = datetime.now() + timedelta(days=2)
    for offset in reversed(range(7)):
        add_appointment(db_session, clinic, start + timedelta(hours=offset))
    add_appointment(db_session, clinic, datetime.now() - timedelta(days=2), 'completada')

    data = api_client.get('/dashboard/1/summary', headers=auth_headers(clinic.admin)).json()['data']

    dates = [item['date'] for item in data['upcoming']]
    assert len(dates) == 5
    assert dates == sorted(dates)
    assert data['by_status']['completada'] == 1


def test_patients_have_no_dashboard(api_client, clinic, auth_headers) -> None:
    response = api_client.get('/dashboard/1/summary', headers=auth_headers(clinic.patient))

    assert response.status_code == 403
