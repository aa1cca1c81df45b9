import pytest

from pesantren.models import UserRole
from pesantren.utils.nis import extract_year_from_nis, generate_nis, validate_nis_format


def test_generate_nis_starts_sequence_per_year(app):
    assert generate_nis(2025) == '25001'
    assert generate_nis(2031) == '31001'


def test_generate_nis_continues_after_last_student(app, factory, school):
    factory.student('Ahmad', school['kelas_7'], nis='25007')
    factory.student('Budi', school['kelas_7'], nis='24005')
    # NIS lama 8 digit tidak ikut dihitung
    factory.student('Citra', school['kelas_7'], nis='25000042')

    assert generate_nis(2025) == '25008'
    assert generate_nis(2024) == '24006'
    assert generate_nis(2026) == '26001'


def test_generate_nis_skips_taken_username(app, factory):
    factory.user('25001', role=UserRole.TU)

    assert generate_nis(2025) == '25002'


def test_factory_students_get_sequential_nis(app, factory, school):
    first = factory.student('Ahmad', school['kelas_7'])
    second = factory.student('Budi', school['kelas_7'], with_account=True)

    assert (first.nis, second.nis) == ('25001', '25002')
    assert second.user.username == '25002'


def test_generate_nis_raises_when_sequence_is_exhausted(app, factory, school):
    factory.student('Ahmad', school['kelas_7'], nis='25999')

    with pytest.raises(ValueError, match='sudah habis'):
        generate_nis(2025)


@pytest.mark.parametrize('nis, expected', [
    ('25001', True),
    ('99999', True),
    ('2501', False),
    ('250001', False),
    ('25a01', False),
    ('', False),
    (None, False),
])
def test_validate_nis_format(nis, expected):
    assert validate_nis_format(nis) is expected


def test_extract_year_from_nis():
    assert extract_year_from_nis('25001') == 2025
    assert extract_year_from_nis('09123') == 2009

    with pytest.raises(ValueError, match='Format NIS tidak valid'):
        extract_year_from_nis('2025001')
