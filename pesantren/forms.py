from flask_wtf import FlaskForm

from wtforms import (
    StringField,
    PasswordField,
    BooleanField,
    IntegerField,
    SelectMultipleField,
)

from wtforms.validators import (
    DataRequired,
    InputRequired,
)


def to_int(value):
    """Angka bulat dari body JSON: hanya int atau string angka (bukan null, bool, float, objek)."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError('Harus berupa angka bulat')
    try:
        return int(value)
    except ValueError:
        raise ValueError('Harus berupa angka bulat')


class StrictIntegerField(IntegerField):
    def process_formdata(self, valuelist):
        if not valuelist:
            return
        try:
            self.data = to_int(valuelist[0])
        except ValueError:
            self.data = None
            raise


class JsonForm(FlaskForm):
    """Form untuk body JSON API. CSRF tidak dipakai (auth via session/Bearer)."""

    class Meta:
        csrf = False


class LoginForm(JsonForm):
    # Ini agar bisa menerima input: "admin", email, atau NIS
    login_id = StringField('Username / Email / NIS', name='loginId', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])
    remember = BooleanField('Ingat Saya')


class PromotionForm(JsonForm):
    # Pilihan santri bebas (divalidasi ulang di service), jadi validate_choice dimatikan
    student_ids = SelectMultipleField(
        'Santri',
        name='studentIds',
        coerce=to_int,
        validate_choice=False,
        validators=[DataRequired(message='Pilih minimal satu santri')],
    )
    source_class_id = StrictIntegerField(
        'Kelas Lama',
        name='sourceClassId',
        validators=[InputRequired(message='Kelas lama harus dipilih')],
    )
    destination_class_id = StrictIntegerField(
        'Kelas Baru',
        name='destinationClassId',
        validators=[InputRequired(message='Kelas baru harus dipilih')],
    )
