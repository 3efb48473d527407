import datetime

import pytest
from pydantic import ValidationError

from localvia.schemas import (
    CandidatePlace,
    GeneratedDay,
    GeneratedSlot,
    PlaceAttributes,
    Product,
    TripPreferences,
)


def test_place_attributes_normalise_enum_lists():
    attrs = PlaceAttributes.model_validate(
        {
            "name": "Bar Del Fico",
            "place_type": "bar",
            "best_days": ["FRI", "sat", "Saturday", "sat"],
            "best_times": "aperitivo",
            "why_people_go": ["aperitivo", " ", "aperitivo", "people watching"],
            "cuisine_type": "drinks",
            "latitude": 41.9,
        }
    )
    assert attrs.best_days == ["fri", "sat"]
    assert attrs.best_times == ["aperitivo"]
    assert attrs.why_people_go == ["aperitivo", "people watching"]
    assert attrs.cuisine_type == "drinks"
    assert attrs.latitude is None and not attrs.has_coordinates


def test_cuisine_only_kept_for_food_places():
    attrs = PlaceAttributes(name="Duomo", type="attraction", cuisine_type="pugliese")
    assert attrs.cuisine_type is None


def test_stay_minutes_resolution():
    assert PlaceAttributes(name="A", type="view").stay_minutes == 30
    assert PlaceAttributes(name="A", type="view", suggested_stay="long").stay_minutes == 120
    assert PlaceAttributes(name="A", type="view", duration_minutes=45).stay_minutes == 45


def test_unknown_place_type_and_confidence_bounds_rejected():
    with pytest.raises(ValidationError):
        CandidatePlace.model_validate({"name": "X", "place_type": "museum", "confidence": 0.9})
    with pytest.raises(ValidationError):
        CandidatePlace.model_validate({"name": "X", "place_type": "bar", "confidence": 1.5})


def test_trip_preferences_normalise_interests():
    prefs = TripPreferences(city_id=" lecce ", start_date="2026-10-19", interests=["art", "food", ""])
    assert prefs.city_id == "lecce"
    assert prefs.interests == {"art": 1.0, "food": 1.0}
    weighted = TripPreferences(city_id="lecce", start_date="2026-10-19", interests={"art": 3, "nightlife": 0})
    assert weighted.interests == {"art": 3.0}


@pytest.mark.parametrize("rhythm", [0, 6])
def test_rhythm_bounds(rhythm):
    with pytest.raises(ValidationError):
        TripPreferences(city_id="lecce", start_date="2026-10-19", rhythm=rhythm)


def test_product_buckets_keep_evening_and_reject_unknown_labels():
    product = Product(id="p", city_id="c", title="Tour", product_type="guided_tour", preferred_time_buckets=["Evening", "morning"])
    assert product.preferred_time_buckets == ["evening", "morning"]
    with pytest.raises(ValidationError):
        Product(id="p", city_id="c", title="Tour", product_type="guided_tour", preferred_time_buckets=["brunch"])


@pytest.mark.parametrize("field,value", [("best_days", ["someday"]), ("best_times", ["evening", "teatime"])])
def test_unknown_day_or_time_tokens_are_rejected(field, value):
    with pytest.raises(ValidationError):
        PlaceAttributes.model_validate({"name": "Belvedere", "place_type": "view", field: value})


def test_late_night_spellings_normalise():
    attrs = PlaceAttributes(name="Cantiere", type="club", best_times=["late night", "Late-Night"])
    assert attrs.best_times == ["late_night"]


def test_trip_preferences_accept_cuisines_and_party():
    prefs = TripPreferences.model_validate(
        {
            "city_id": "lecce",
            "start_date": "2026-10-19",
            "cuisinePreferences": ["Pugliese", "pesce", "pugliese"],
            "party": {"adults": 2, "children": 1},
        }
    )
    assert prefs.cuisine_preferences == ["pugliese", "pesce"]
    assert prefs.party.children == 1


def test_generated_day_rejects_overlaps_and_empty_days():
    a = GeneratedSlot(id="day1-slot0", kind="break", start="09:00", end="10:00")
    b = GeneratedSlot(id="day1-slot1", kind="break", start="09:30", end="10:30")
    with pytest.raises(ValidationError):
        GeneratedDay(day_number=1, date=datetime.date(2026, 10, 19), weekday="mon", slots=(a, b), summary="")
    with pytest.raises(ValidationError):
        GeneratedDay(day_number=1, date=datetime.date(2026, 10, 19), weekday="mon", slots=(), summary="")
    with pytest.raises(ValidationError):
        GeneratedSlot(id="s", kind="break", start="10:00", end="10:00")
