import pytest

from common.forms import get_choice, get_float, get_int, get_strength
from common.validation import ValidationError


def test_get_float_with_defaults_and_bounds():
    assert get_float({}, "value", 1.5) == 1.5
    assert get_float({"value": " "}, "value", 1.5) == 1.5
    assert get_float({"value": "2.25"}, "value", 1.5) == 2.25

    with pytest.raises(ValidationError, match="Invalid value"):
        get_float({"value": "bad"}, "value", 1.5)
    with pytest.raises(ValidationError, match="Invalid value"):
        get_float({"value": "nan"}, "value", 1.5)
    with pytest.raises(ValidationError, match="must be ≥"):
        get_float({"value": "0.1"}, "value", 1.5, minimum=0.5)
    with pytest.raises(ValidationError, match="must be ≤"):
        get_float({"value": "9"}, "value", 1.5, maximum=5)


def test_get_strength_is_bounded_to_unit_range():
    assert get_strength({"detail": "0.4"}, "detail", 0.6) == 0.4
    assert get_strength({}, "detail", 0.6) == 0.6
    with pytest.raises(ValidationError, match="detail must be ≤"):
        get_strength({"detail": "1.5"}, "detail", 0.6)
    with pytest.raises(ValidationError, match="detail must be ≥"):
        get_strength({"detail": "-0.1"}, "detail", 0.6)


def test_get_int_checks_whole_numbers_and_choices():
    assert get_int({}, "scale", 2) == 2
    assert get_int({"scale": "4"}, "scale", 2, choices={2, 4}) == 4
    assert get_int({"scale": "4.0"}, "scale", 2) == 4

    with pytest.raises(ValidationError, match="whole number"):
        get_int({"scale": "2.5"}, "scale", 2)
    with pytest.raises(ValidationError, match="must be one of 2, 4"):
        get_int({"scale": "3"}, "scale", 2, choices={4, 2})


def test_get_choice_normalizes_case():
    assert get_choice({}, "fmt", "png", choices={"png", "jpg"}) == "png"
    assert get_choice({"fmt": "JPG"}, "fmt", "png", choices={"png", "jpg"}) == "jpg"
    with pytest.raises(ValidationError, match="Unsupported fmt 'gif'"):
        get_choice({"fmt": "gif"}, "fmt", "png", choices={"png", "jpg"})


@pytest.mark.parametrize("raw", ["inf", "-inf", "1e999"])
def test_non_finite_numbers_are_rejected(raw):
    with pytest.raises(ValidationError, match="Invalid value for scale"):
        get_float({"scale": raw}, "scale", 2.0)
    with pytest.raises(ValidationError, match="Invalid value for scale"):
        get_int({"scale": raw}, "scale", 2, choices={2, 4})
