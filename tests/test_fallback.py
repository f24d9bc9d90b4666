from core.fallback import Verdict, try_in_order


def _classify(item, result, error):
    if error is not None:
        return Verdict.reject("error", error)
    if result is None:
        return Verdict.reject("empty")
    return Verdict.accept(result)


def test_stops_at_first_accepted_item():
    seen = []

    def attempt(item):
        seen.append(item)
        return {"b": "B", "c": "C"}.get(item)

    outcome = try_in_order(["a", "b", "c"], attempt, _classify)

    assert outcome.succeeded
    assert outcome.value == "B"
    assert outcome.item == "b"
    assert seen == ["a", "b"]
    assert [f.kind for f in outcome.failures] == ["empty"]


def test_exceptions_are_classified_not_raised():
    def attempt(item):
        raise ValueError(item)

    outcome = try_in_order(["x", "y"], attempt, _classify)

    assert not outcome.succeeded
    assert outcome.count("error") == 2
    assert str(outcome.first("error").detail) == "x"
    assert outcome.first("empty") is None


def test_empty_items():
    outcome = try_in_order([], lambda item: item, _classify)
    assert not outcome.succeeded
    assert outcome.failures == []
