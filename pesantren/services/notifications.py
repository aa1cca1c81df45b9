from pesantren.extensions import db
from pesantren.models import Notification, NotificationType, User, UserRole


def create_notification(user_id, title, message, type, invoice_id=None):
    """
    Tambahkan notifikasi ke session. Commit diserahkan ke pemanggil
    (satu batch = satu commit pada proses naik kelas).
    """
    if isinstance(type, str):
        type = NotificationType(type)

    notice = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        is_read=False,
        invoice_id=invoice_id,
    )
    db.session.add(notice)
    return notice


def promotion_message(source_class, destination_class):
    source_name = source_class.name if source_class else 'Kelas Lama'
    destination_name = destination_class.name if destination_class else 'Kelas Baru'
    message = f"Selamat! Anda telah naik kelas dari {source_name} ke {destination_name}."

    source_level = getattr(source_class, 'grade_level', None)
    destination_level = getattr(destination_class, 'grade_level', None)
    if source_level is not None and destination_level is not None:
        message += f" (Level: {source_level} → {destination_level})"
    return message


def bill_migration_message(destination_class, academic_year):
    class_name = destination_class.name if destination_class else 'Kelas Baru'
    year_name = academic_year.name if academic_year else 'baru'
    year_state = 'aktif' if academic_year and academic_year.is_active else 'tidak aktif'
    return (
        f"Tagihan Anda telah dipindah ke kelas baru ({class_name}) tahun ajaran "
        f"{year_name} ({year_state}) karena kenaikan kelas. Silakan periksa tagihan terbaru Anda."
    )


def notify_payment_admins(title, message):
    admins = User.query.filter(
        User.role == UserRole.ADMIN,
        User.receive_app_notifications.is_(True),
    ).all()
    return [create_notification(admin.id, title, message, NotificationType.SISTEM) for admin in admins]


def format_rupiah(amount):
    return f"Rp {amount or 0:,.0f}".replace(',', '.')
