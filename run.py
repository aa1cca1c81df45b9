from pesantren import create_app
from pesantren.extensions import db
from pesantren.models import AcademicYear, ClassRoom, Student, User, UserRole
import os

app = create_app()

# Shell context processor agar mudah testing di terminal
@app.shell_context_processor
def make_shell_context():
    return {
        'db': db, 'User': User, 'UserRole': UserRole,
        'Student': Student, 'ClassRoom': ClassRoom, 'AcademicYear': AcademicYear,
    }

if __name__ == '__main__':
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host='0.0.0.0', port=8000, debug=debug_mode)
