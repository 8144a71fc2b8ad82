from __future__ import annotations

import pytest

from bizdir.domain.assets.entities import ImageFile
from bizdir.domain.fields.validation import ValidationEngine
from bizdir.domain.taxonomy.entities import TaxonomySnapshot, Vocabulary

from tests.fixtures.sample_data import TAXONOMY, add_payload, png, taxonomy_snapshot, weekday_hours


@pytest.fixture
def engine() -> ValidationEngine:
    return ValidationEngine(taxonomy_snapshot())


# --- phone -------------------------------------------------------------------

def test_phone_is_prefixed_with_calling_code(engine: ValidationEngine) -> None:
    # Act
    result = engine.validate('Contact Number', '771234567')

    # Assert
    assert result.ok
    assert result.normalized_value == {'contact': '+94771234567'}


@pytest.mark.parametrize('value', ['+94771234567', '77123456', '7712345678', '77-123-456', ''])
def test_phone_rejects_anything_but_nine_digits(engine: ValidationEngine, value: str) -> None:
    result = engine.validate('WhatsApp Number', value)

    assert not result.ok
    assert result.errors
    assert all(e.startswith('WhatsApp Number:') for e in result.errors)


def test_whatsapp_writes_its_own_key(engine: ValidationEngine) -> None:
    assert engine.validate('WhatsApp Number', ' 712345678 ').normalized_value == {'whatsapp': '+94712345678'}


def test_calling_code_comes_from_the_engine() -> None:
    engine = ValidationEngine(taxonomy_snapshot(), calling_code='+1')

    assert engine.validate('Contact Number', '555123456').normalized_value == {'contact': '+1555123456'}


# --- text --------------------------------------------------------------------

def test_name_is_trimmed(engine: ValidationEngine) -> None:
    assert engine.validate('Business Name', '  Ceylon Tea Rooms ').normalized_value == {'name': 'Ceylon Tea Rooms'}


@pytest.mark.parametrize('value', ['A', 'x' * 101, '   '])
def test_name_length_bounds(engine: ValidationEngine, value: str) -> None:
    assert not engine.validate('Business Name', value).ok


def test_about_word_limit(engine: ValidationEngine) -> None:
    assert engine.validate('About/Description', ' '.join(['word'] * 200)).ok

    result = engine.validate('About/Description', ' '.join(['word'] * 201))

    assert not result.ok
    assert '201' in result.errors[0]


def test_address_must_not_be_blank(engine: ValidationEngine) -> None:
    assert not engine.validate('Address', '   ').ok
    assert engine.validate('Address', '1 Lake Road').normalized_value == {'address': '1 Lake Road'}


# --- email and urls ------------------------------------------------------------

def test_email_is_lowercased(engine: ValidationEngine) -> None:
    result = engine.validate('Email', ' Owner@LankaBiz.LK ')

    assert result.ok
    assert result.normalized_value == {'email': 'owner@lankabiz.lk'}


@pytest.mark.parametrize('value', ['owner', 'owner@', '@lankabiz.lk', 'owner@lankabiz'])
def test_email_rejects_malformed_addresses(engine: ValidationEngine, value: str) -> None:
    assert not engine.validate('Email', value).ok


@pytest.mark.parametrize('field,key', [('Website', 'website'), ('Facebook Page', 'facebook'), ('Location URL', 'location_url')])
def test_urls_need_http_scheme(engine: ValidationEngine, field: str, key: str) -> None:
    assert engine.validate(field, 'https://lankabiz.lk/shop').normalized_value == {key: 'https://lankabiz.lk/shop'}
    assert not engine.validate(field, 'lankabiz.lk/shop').ok
    assert not engine.validate(field, 'ftp://lankabiz.lk').ok


# --- taxonomy ------------------------------------------------------------------

def test_category_known_value_is_canonicalized(engine: ValidationEngine) -> None:
    assert engine.validate('Category', 'hotels').normalized_value == {'category': 'Hotels'}


def test_category_unknown_value_without_other_is_rejected(engine: ValidationEngine) -> None:
    result = engine.validate('Category', 'Spa')

    assert not result.ok
    assert "'Spa'" in result.errors[0]


def test_category_other_needs_custom_value(engine: ValidationEngine) -> None:
    assert not engine.validate('Category', {'value': 'other'}).ok

    result = engine.validate('Category', {'value': 'other', 'custom': '  Ayurveda Spa '})

    assert result.ok
    assert result.normalized_value == {'category': 'Ayurveda Spa'}


def test_location_fans_out_to_location_and_district(engine: ValidationEngine) -> None:
    # Act
    result = engine.validate('Location', {'value': 'galle', 'district': 'galle'})

    # Assert
    assert result.ok
    assert result.normalized_value == {'location': 'Galle', 'district': 'Galle'}


def test_location_requires_district(engine: ValidationEngine) -> None:
    result = engine.validate('Location', {'value': 'Galle'})

    assert not result.ok
    assert result.errors == ['Location: district is required']


def test_location_must_sit_in_its_recorded_district() -> None:
    # Arrange
    values = {**TAXONOMY, Vocabulary.LOCATION: [*TAXONOMY[Vocabulary.LOCATION], 'Peradeniya']}
    engine = ValidationEngine(TaxonomySnapshot.from_values(values, {'Peradeniya': 'Kandy'}))

    # Act
    mismatched = engine.validate('Location', {'value': 'peradeniya', 'district': 'Galle'})
    matched = engine.validate('Location', {'value': 'Peradeniya', 'district': 'kandy'})

    # Assert
    assert mismatched.errors == ["Location: 'Peradeniya' is in district 'Kandy', not 'Galle'"]
    assert matched.ok
    assert matched.normalized_value == {'location': 'Peradeniya', 'district': 'Kandy'}


def test_custom_location_matching_a_known_one_is_paired_too() -> None:
    engine = ValidationEngine(TaxonomySnapshot.from_values(TAXONOMY, {'Galle': 'Galle'}))

    result = engine.validate('Location', {'value': 'other', 'custom': 'galle', 'district': 'Colombo'})

    assert not result.ok
    assert "'Galle' is in district 'Galle'" in result.errors[0]


def test_district_is_free_text(engine: ValidationEngine) -> None:
    assert engine.validate('District', 'Matara').normalized_value == {'district': 'Matara'}


# --- operating hours -------------------------------------------------------------

def test_always_open_ignores_day_data(engine: ValidationEngine) -> None:
    # Arrange: day data that would be invalid on its own
    raw = {'always_open': True, 'operating_times': {'monday': {'is_open': True, 'open_time': '18:00', 'close_time': '09:00'}}}

    # Act
    result = engine.validate('Operating Hours', raw)

    # Assert
    assert result.ok
    assert result.normalized_value == {'always_open': True, 'operating_times': None}


def test_hours_need_at_least_one_open_day(engine: ValidationEngine) -> None:
    result = engine.validate('Operating Hours', {'always_open': False, 'operating_times': {}})

    assert not result.ok
    assert 'at least one operating day' in result.errors[0]


def test_hours_close_must_follow_open(engine: ValidationEngine) -> None:
    raw = {'always_open': False, 'operating_times': weekday_hours(monday=('09:00', '09:00'), tuesday=('10:00', '08:30'))}

    result = engine.validate('Operating Hours', raw)

    assert not result.ok
    assert len(result.errors) == 2


def test_hours_open_day_needs_both_times(engine: ValidationEngine) -> None:
    raw = {'operating_times': {'friday': {'is_open': True, 'open_time': '09:00'}}}

    result = engine.validate('Operating Hours', raw)

    assert result.errors == ['Operating Hours: set both open and close times for friday']


def test_hours_normalize_every_weekday(engine: ValidationEngine) -> None:
    raw = {'alwaysOpen': False, 'operatingTimes': {'Monday': {'isOpen': True, 'openTime': '08:00', 'closeTime': '16:30'}}}

    result = engine.validate('Operating Hours', raw)

    assert result.ok
    times = result.normalized_value['operating_times']
    assert list(times) == ['sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday']
    assert times['monday'] == {'is_open': True, 'open_time': '08:00', 'close_time': '16:30'}
    assert times['sunday']['is_open'] is False


# --- images ----------------------------------------------------------------------

def test_images_need_at_least_one_file(engine: ValidationEngine) -> None:
    assert not engine.validate('Business Images', {'files': []}).ok


def test_images_respect_the_per_business_cap(engine: ValidationEngine) -> None:
    result = engine.validate('Business Images', {'files': [png('a.png'), png('b.png')], 'existing_count': 4})

    assert not result.ok
    assert 'maximum 5 images' in result.errors[0]


def test_images_report_type_and_size_per_file(engine: ValidationEngine) -> None:
    # Arrange
    text_file = ImageFile(filename='notes.txt', content_type='text/plain', data=b'hello')
    too_big = png('huge.png', size=5 * 1024 * 1024 + 1)

    # Act
    result = engine.validate('Business Images', {'files': [text_file, too_big]})

    # Assert
    assert not result.ok
    assert any('notes.txt' in e and 'not allowed' in e for e in result.errors)
    assert any('huge.png' in e and 'exceeds' in e for e in result.errors)


# --- registry edges ----------------------------------------------------------------

def test_unknown_field_is_an_invalid_result(engine: ValidationEngine) -> None:
    result = engine.validate('Favourite Colour', 'blue')

    assert not result.ok
    assert result.errors == ['Unknown field: Favourite Colour']


def test_full_submission_is_normalized(engine: ValidationEngine) -> None:
    # Act
    result = engine.validate_submission(add_payload(whatsapp='712345678', website='https://lankabiz.lk'))

    # Assert
    assert result.ok, result.errors
    changes = result.changes()
    assert changes['contact'] == '+94771234567'
    assert changes['whatsapp'] == '+94712345678'
    assert changes['email'] == 'owner@lankabiz.lk'
    assert changes['category'] == 'Spice Shops'
    assert changes['district'] == 'Kandy'
    assert [r.field for r in result.results][:3] == ['Business Name', 'About/Description', 'Address']


def test_full_submission_reports_missing_required_fields(engine: ValidationEngine) -> None:
    payload = add_payload()
    del payload['address']
    del payload['contact']

    result = engine.validate_submission(payload)

    assert not result.ok
    assert 'Address: is required' in result.errors
    assert 'Contact Number: is required' in result.errors


def test_full_submission_skips_absent_optional_fields(engine: ValidationEngine) -> None:
    payload = add_payload()
    del payload['email']

    result = engine.validate_submission(payload)

    assert result.ok
    assert 'email' not in result.changes()
