from types import SimpleNamespace

import pytest

from pesantren.services.promotion_rules import (
    PromotionValidationError, filter_destination_classes, occupied_class_ids, validate_promotion,
)


def make_class(id, level=None):
    return SimpleNamespace(id=id, name=f"Kelas {id}", grade_level=level)


def make_student(id, current_class_id, history=(), name=None):
    return SimpleNamespace(
        id=id,
        full_name=name or f"Santri {id}",
        current_class_id=current_class_id,
        class_history=[SimpleNamespace(new_class_id=cid) for cid in history],
    )


CLASSES = [make_class(1, 7), make_class(2, 8), make_class(3, 8), make_class(4, 6), make_class(5)]


def ids(classes):
    return [c.id for c in classes]


# --- Filter kelas tujuan ---

def test_filter_returns_all_without_source_or_selection():
    students = [make_student(10, 1)]
    assert ids(filter_destination_classes(CLASSES, None, [10], students)) == [1, 2, 3, 4, 5]
    assert ids(filter_destination_classes(CLASSES, 1, [], students)) == [1, 2, 3, 4, 5]


def test_filter_returns_all_when_source_unknown():
    students = [make_student(10, 1)]
    assert ids(filter_destination_classes(CLASSES, 99, [10], students)) == [1, 2, 3, 4, 5]


def test_filter_excludes_source_lower_level_and_occupied():
    students = [make_student(10, 1, history=[3]), make_student(11, 1)]
    result = ids(filter_destination_classes(CLASSES, 1, [10, 11], students))

    assert 1 not in result  # kelas lama
    assert 4 not in result  # level lebih rendah
    assert 3 not in result  # pernah dijalani santri 10
    assert result == [2, 5]


def test_filter_class_without_level_is_not_limited():
    source = make_class(6)
    classes = [source, make_class(7, 1), make_class(8, 12)]
    students = [make_student(10, 6)]
    assert ids(filter_destination_classes(classes, 6, [10], students)) == [7, 8]


def test_occupied_class_ids_ignores_unknown_students():
    students = {10: make_student(10, 1, history=[2])}
    assert occupied_class_ids([10, 99], students) == {1, 2}


# --- Validator ---

@pytest.mark.parametrize('source, destination, selected, message', [
    (None, 2, [10], 'Pilih kelas lama terlebih dahulu'),
    (1, None, [10], 'Pilih kelas baru'),
    (1, 1, [10], 'Kelas lama dan kelas baru harus berbeda'),
    (1, 2, [], 'Pilih minimal satu santri'),
])
def test_validator_rules_in_order(source, destination, selected, message):
    students = [make_student(10, 1)]
    with pytest.raises(PromotionValidationError) as excinfo:
        validate_promotion(source, destination, selected, students)
    assert excinfo.value.message == message
    assert excinfo.value.status_code == 400


def test_validator_aggregates_all_offenders():
    students = [
        make_student(10, 1, history=[2], name='Ahmad'),
        make_student(11, 1, name='Budi'),
        make_student(12, 1, history=[4, 2], name='Citra'),
    ]
    with pytest.raises(PromotionValidationError) as excinfo:
        validate_promotion(1, 2, [10, 11, 12], students)

    error = excinfo.value
    assert error.message == (
        'Santri berikut tidak bisa mundur ke kelas yang sudah pernah dijalani: Ahmad, Citra'
    )
    assert error.students == [{'id': 10, 'name': 'Ahmad'}, {'id': 12, 'name': 'Citra'}]


def test_validator_rejects_destination_equal_to_current_class():
    students = [make_student(10, 2, name='Dewi')]
    with pytest.raises(PromotionValidationError) as excinfo:
        validate_promotion(1, 2, [10], students)
    assert 'Dewi' in excinfo.value.message


def test_validator_passes_for_fresh_destination():
    students = [make_student(10, 1, history=[4]), make_student(11, 1)]
    assert validate_promotion(1, 2, [10, 11], students) is True
