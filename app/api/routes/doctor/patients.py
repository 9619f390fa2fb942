from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date
from typing import List, Optional

from app.api.deps import get_services, require_role
from app.models.patient import LinkedPatient
from app.models.tic import ChartMode, TicChartOut, TicFilter, TicHistoryOut, TimeRange
from app.services import Services
from app.services.tic_data import chart_series, distinct_locations, filter_tics

router = APIRouter(prefix="/doctor/patients", tags=["doctor_patients"])


def _tic_filter(
    time_range: TimeRange = Query(TimeRange.ALL),
    specific_date: Optional[date] = Query(None),
    location: List[str] = Query([]),
    sort: str = Query("desc", pattern="^(asc|desc)$"),
) -> TicFilter:
    return TicFilter(
        time_range=time_range,
        specific_date=specific_date,
        locations=location,
        sort=sort,
    )


def _require_link(services: Services, doctor_id: str, patient_id: str):
    if services.store.get_link(doctor_id, patient_id) is None:
        raise HTTPException(status_code=403, detail="Patient has not confirmed access")


@router.get("/")
async def list_patients(
    user=Depends(require_role(["doctor"])),
    services: Services = Depends(get_services),
):
    """
    Patients who confirmed access for the calling doctor.
    Links without a user profile are skipped.
    """
    items: List[LinkedPatient] = []
    for link in services.store.list_links(user["uid"]):
        profile = services.directory.get_profile(link.patient_id)
        if profile is None:
            continue
        items.append(LinkedPatient(
            id=link.patient_id,
            display_name=profile.display_name or "Unknown",
            tic_counter=profile.tic_counter,
        ))

    return {"items": items}


@router.get("/{patient_id}/tics", response_model=TicHistoryOut)
async def patient_tics(
    patient_id: str,
    tic_filter: TicFilter = Depends(_tic_filter),
    user=Depends(require_role(["doctor"])),
    services: Services = Depends(get_services),
):
    _require_link(services, user["uid"], patient_id)

    events = services.tic_history.load(patient_id)
    return TicHistoryOut(
        items=filter_tics(events, tic_filter),
        locations=distinct_locations(events),
    )


@router.get("/{patient_id}/tics/chart", response_model=TicChartOut)
async def patient_tic_chart(
    patient_id: str,
    mode: ChartMode = Query(ChartMode.AVG),
    tic_filter: TicFilter = Depends(_tic_filter),
    user=Depends(require_role(["doctor"])),
    services: Services = Depends(get_services),
):
    _require_link(services, user["uid"], patient_id)

    events = filter_tics(services.tic_history.load(patient_id), tic_filter)
    return chart_series(events, mode, by_time_of_day=tic_filter.time_range == TimeRange.TODAY)
