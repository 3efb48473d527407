import datetime

from localvia.config import SchedulerSettings
from localvia.schemas import WEEKDAYS, CityZone, Place, TripPreferences
from localvia.scheduler.allocator import SlotAllocator
from localvia.scheduler.scoring import DayState, is_eligible, soft_score
from localvia.scheduler.timing import format_hhmm, parse_hhmm, time_bucket, walking_minutes

MONDAY = datetime.date(2026, 10, 19)


def _place(pid, name, place_type, **attrs):
    return Place(id=pid, city_id="lecce", name=name, type=place_type, zone="Centro", **attrs)


def _six_place_pool():
    return [
        _place("a1", "Basilica di Santa Croce", "attraction", physical_effort=2, mental_effort=2),
        _place("a2", "Museo Castromediano", "attraction", physical_effort=1, mental_effort=2),
        _place("v1", "Torre del Parco", "view", physical_effort=1, mental_effort=1),
        _place("b1", "Bar Del Fico", "bar", physical_effort=1, mental_effort=1),
        _place("r1", "Trattoria Le Zie", "restaurant", physical_effort=1, mental_effort=1),
        _place("r2", "Osteria degli Spiriti", "restaurant", physical_effort=1, mental_effort=1),
    ]


def _prefs(**overrides):
    data = {"city_id": "lecce", "start_date": MONDAY, "num_days": 1, "rhythm": 3}
    data.update(overrides)
    return TripPreferences(**data)


def _bound(slots):
    return [s for s in slots if s.place is not None]


def test_six_place_pool_single_day_rhythm_three():
    settings = SchedulerSettings()
    slots = SlotAllocator(_prefs(), settings).allocate(MONDAY, _six_place_pool(), set())

    lunch = [s for s in slots if s.kind == "meal" and parse_hhmm("12:30") <= s.start <= parse_hhmm("14:30")]
    assert len(lunch) == 1
    assert lunch[0].place.type == "restaurant"

    activities = [s for s in slots if s.kind == "activity"]
    assert len([s for s in activities if s.place.type in ("attraction", "view")]) >= 2

    ids = [s.place.id for s in _bound(slots)]
    assert len(ids) == len(set(ids))

    budget = settings.effort_budget(3)
    assert sum(s.place.physical_effort for s in _bound(slots)) <= budget
    assert sum(s.place.mental_effort for s in _bound(slots)) <= budget


def test_slots_are_chronological_and_inside_the_window():
    allocator = SlotAllocator(_prefs(), SchedulerSettings())
    slots = allocator.allocate(MONDAY, _six_place_pool(), set())

    assert slots[0].start >= allocator.day_start
    assert slots[-1].end <= allocator.day_end
    for prev, nxt in zip(slots, slots[1:]):
        assert prev.end <= nxt.start
    assert all(s.end > s.start for s in slots)


def test_bar_without_best_times_is_not_scheduled_in_the_morning():
    slots = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, _six_place_pool(), set())
    bar = next(s for s in slots if s.place is not None and s.place.id == "b1")
    assert time_bucket(bar.start) not in ("morning", "lunch")


def test_best_days_are_honoured():
    tuesday_only = _place("t1", "Mercato del Martedi", "zone", best_days=["tue"])
    assert WEEKDAYS[MONDAY.weekday()] == "mon"

    monday = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, [tuesday_only], set())
    tuesday = SlotAllocator(_prefs(), SchedulerSettings()).allocate(
        MONDAY + datetime.timedelta(days=1), [tuesday_only], set()
    )

    assert not _bound(monday)
    assert [s.place.id for s in _bound(tuesday)] == ["t1"]


def test_used_places_are_skipped_unless_revisit_friendly():
    plain = _place("z1", "Piazza Sant'Oronzo", "zone")
    friendly = _place("z2", "Villa Comunale", "zone", revisit_friendly=True)

    slots = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, [plain, friendly], {"z1", "z2"})

    assert [s.place.id for s in _bound(slots)] == ["z2"]


def test_effort_budget_caps_the_day():
    heavy = [
        _place(f"h{i}", f"Scavi {i}", "attraction", physical_effort=4, mental_effort=1, duration_minutes=30)
        for i in range(4)
    ]
    slots = SlotAllocator(_prefs(rhythm=1), SchedulerSettings()).allocate(MONDAY, heavy, set())
    assert sum(s.place.physical_effort for s in _bound(slots)) <= SchedulerSettings().effort_budget(1)
    assert len(_bound(slots)) == 1


def test_empty_pool_still_yields_a_well_formed_day():
    slots = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, [], set())
    assert slots
    assert {s.kind for s in slots} <= {"break", "transfer"}
    for prev, nxt in zip(slots, slots[1:]):
        assert prev.end <= nxt.start


def test_missing_restaurants_fall_back_to_a_free_meal_break():
    pool = [_place("a1", "Anfiteatro Romano", "attraction")]
    slots = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, pool, set())
    meals = [s for s in slots if s.rationale.startswith("Free lunch")]
    assert len(meals) == 1
    assert meals[0].kind == "break"


def test_calm_rhythm_rests_after_lunch():
    pool = [p for p in _six_place_pool() if p.id in ("v1", "r1", "r2")]
    slots = SlotAllocator(_prefs(rhythm=1), SchedulerSettings()).allocate(MONDAY, pool, set())
    lunch_index = next(i for i, s in enumerate(slots) if s.kind == "meal")
    assert slots[lunch_index + 1].kind == "break"


def test_long_walks_become_transfer_slots():
    far = [
        Place(id="p1", city_id="roma", name="Colosseo", type="attraction", latitude=41.8902, longitude=12.4922),
        Place(id="p2", city_id="roma", name="Villa Borghese", type="view", latitude=41.9142, longitude=12.4923),
    ]
    slots = SlotAllocator(_prefs(), SchedulerSettings()).allocate(MONDAY, far, set())
    kinds = [s.kind for s in slots if s.kind != "break"]
    assert kinds[:3] == ["activity", "transfer", "activity"]
    transfer = next(s for s in slots if s.kind == "transfer")
    assert transfer.end - transfer.start >= SchedulerSettings().transfer_threshold_minutes


def test_walking_minutes_defaults():
    settings = SchedulerSettings()
    a = _place("a", "A", "zone")
    b = _place("b", "B", "zone")
    c = Place(id="c", city_id="lecce", name="C", type="zone", zone="Rudiae")
    assert walking_minutes(None, a, settings) == 0
    assert walking_minutes(a, b, settings) == settings.same_zone_walk_minutes
    assert walking_minutes(a, c, settings) == settings.default_walk_minutes


def test_time_helpers():
    assert parse_hhmm("09:30") == 570
    assert format_hhmm(570) == "09:30"
    assert time_bucket(parse_hhmm("18:45")) == "aperitivo"
    assert time_bucket(parse_hhmm("19:30")) == "dinner"
    assert time_bucket(parse_hhmm("02:00")) == "late_night"


def test_club_only_eligible_at_night():
    settings = SchedulerSettings()
    prefs = _prefs()
    club = _place("c1", "Cantiere", "club")
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    assert not is_eligible(club, bucket="afternoon", state=state, used=set(), prefs=prefs, settings=settings)
    assert is_eligible(club, bucket="night", state=state, used=set(), prefs=prefs, settings=settings)


def test_avoided_types_are_never_eligible():
    settings = SchedulerSettings()
    prefs = _prefs(avoid=["club"])
    club = _place("c1", "Cantiere", "club")
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    assert not is_eligible(club, bucket="night", state=state, used=set(), prefs=prefs, settings=settings)


def test_soft_score_prefers_local_secrets_and_interests():
    settings = SchedulerSettings()
    prefs = _prefs(interests=["art"], locality=5)
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    secret = _place("s", "Chiesa nascosta", "attraction", local_secret=True, vibe_score=5)
    trap = _place("t", "Souvenir Row", "zone", tourist_trap=True, vibe_score=1)

    assert soft_score(secret, state=state, prefs=prefs, settings=settings, walk=0) > soft_score(
        trap, state=state, prefs=prefs, settings=settings, walk=0
    )


def test_effort_budget_grows_with_rhythm():
    settings = SchedulerSettings()
    assert [settings.effort_budget(r) for r in range(1, 6)] == [4, 6, 8, 10, 12]


def test_evening_places_wait_for_aperitivo_or_dinner_time():
    sunset = _place("v9", "Belvedere", "view", best_times=["evening"], physical_effort=1, mental_effort=1)
    settings = SchedulerSettings()
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    prefs = _prefs()

    for bucket, expected in (("morning", False), ("aperitivo", True), ("dinner", True), ("night", False)):
        assert is_eligible(sunset, bucket=bucket, state=state, used=set(), prefs=prefs, settings=settings) is expected

    slots = SlotAllocator(prefs, settings).allocate(MONDAY, [sunset], set())
    [placed] = _bound(slots)
    assert time_bucket(placed.start) in ("aperitivo", "dinner")


def test_lunch_never_starts_after_its_window_closes():
    settings = SchedulerSettings()
    pool = [
        Place(
            id="p1",
            city_id="roma",
            name="Colosseo",
            type="attraction",
            latitude=41.8902,
            longitude=12.4922,
            duration_minutes=280,
            physical_effort=1,
            mental_effort=1,
        ),
        Place(
            id="r1",
            city_id="roma",
            name="Osteria Borghese",
            type="restaurant",
            latitude=41.9142,
            longitude=12.4923,
            physical_effort=1,
            mental_effort=1,
        ),
    ]

    slots = SlotAllocator(_prefs(), settings).allocate(MONDAY, pool, set())

    lunch_open, lunch_close = (parse_hhmm(v) for v in settings.lunch_window)
    dinner_open, dinner_close = (parse_hhmm(v) for v in settings.dinner_window)
    for slot in slots:
        if slot.kind == "meal":
            assert lunch_open <= slot.start <= lunch_close or dinner_open <= slot.start <= dinner_close
    free_lunch = next(s for s in slots if s.rationale.startswith("Free lunch"))
    assert free_lunch.start <= lunch_close
    dinner = next(s for s in slots if s.kind == "meal")
    assert dinner.place.id == "r1" and dinner.start >= dinner_open


def test_budget_steers_the_meal_choice():
    pool = [
        _place("r8", "Aaa Lusso", "restaurant", price_range="luxury"),
        _place("r9", "Zzz Trattoria", "restaurant", price_range="budget"),
    ]

    def meals_for(budget):
        slots = SlotAllocator(_prefs(budget=budget), SchedulerSettings()).allocate(MONDAY, pool, set())
        return [s.place.id for s in slots if s.kind == "meal"]

    assert meals_for(1) == ["r9", "r8"]
    assert meals_for(3) == ["r8", "r9"]


def test_cuisine_preferences_raise_the_score():
    settings = SchedulerSettings()
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    prefs = _prefs(cuisine_preferences=["pugliese"])
    local = _place("r1", "Trattoria Le Zie", "restaurant", cuisine_type="cucina pugliese")
    pizza = _place("r2", "Pizzeria Lombardi", "restaurant", cuisine_type="pizza")

    assert soft_score(local, state=state, prefs=prefs, settings=settings, walk=0) > soft_score(
        pizza, state=state, prefs=prefs, settings=settings, walk=0
    )


def test_clubs_are_off_limits_with_children_in_the_party():
    settings = SchedulerSettings()
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    club = _place("c1", "Cantiere", "club")

    family = _prefs(party={"adults": 2, "children": 1})
    couple = _prefs(party={"adults": 2})

    assert not is_eligible(club, bucket="night", state=state, used=set(), prefs=family, settings=settings)
    assert is_eligible(club, bucket="night", state=state, used=set(), prefs=couple, settings=settings)


def test_crowded_places_score_lower_for_families():
    settings = SchedulerSettings()
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    busy = _place("z1", "Piazza Sant'Oronzo", "zone", crowd_level="high")

    family = soft_score(busy, state=state, prefs=_prefs(party={"seniors": 2}), settings=settings, walk=0)
    couple = soft_score(busy, state=state, prefs=_prefs(party={"adults": 2}), settings=settings, walk=0)

    assert family == couple - settings.weights.family_crowd


def test_zone_touristiness_stands_in_for_a_missing_vibe_score():
    settings = SchedulerSettings()
    state = DayState(weekday="mon", physical_budget=8, mental_budget=8)
    prefs = _prefs(locality=5)
    place = _place("z1", "Mercato coperto", "zone")
    quiet = CityZone(id="q", city_id="lecce", name="Centro", touristy_score=1)
    busy = CityZone(id="b", city_id="lecce", name="Centro", touristy_score=5)

    assert soft_score(place, state=state, prefs=prefs, settings=settings, walk=0, zone=quiet) > soft_score(
        place, state=state, prefs=prefs, settings=settings, walk=0, zone=busy
    )


def test_zone_tips_reach_the_rationale():
    zone = CityZone(id="zc", city_id="lecce", name="centro", best_time="morning", local_tip="Go before the tour buses")
    pool = [_place("a1", "Basilica di Santa Croce", "attraction")]

    slots = SlotAllocator(_prefs(), SchedulerSettings(), zones=[zone]).allocate(MONDAY, pool, set())

    [activity] = _bound(slots)
    assert "centro tip: Go before the tour buses" in activity.rationale
