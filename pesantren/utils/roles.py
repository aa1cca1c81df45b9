from pesantren.models import UserRole


ROLE_LABELS = {
    UserRole.ADMIN: 'Admin',
    UserRole.TU: 'Staf TU',
    UserRole.WALI_SANTRI: 'Wali Santri',
    UserRole.SANTRI: 'Santri',
}


def parse_role(raw):
    if not raw:
        return None

    if isinstance(raw, UserRole):
        return raw

    if isinstance(raw, str):
        normalized = raw.strip()
        if not normalized:
            return None

        try:
            return UserRole[normalized]
        except KeyError:
            pass

        for role in UserRole:
            if normalized.lower() == role.value.lower():
                return role

    return None


def user_has_role(user, *roles):
    if not user or not getattr(user, 'is_authenticated', False):
        return False
    wanted = {parse_role(role) for role in roles}
    wanted.discard(None)
    return parse_role(getattr(user, 'role', None)) in wanted


def role_label(role):
    parsed = parse_role(role)
    if not parsed:
        return '-'
    return ROLE_LABELS.get(parsed, parsed.value.replace('_', ' ').title())
