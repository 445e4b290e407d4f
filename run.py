from drylog import create_app
from drylog.models import db

app = create_app()

if __name__ == "__main__":
    # Local development only; deployed databases are managed with migrations/
    with app.app_context():
        db.create_all()
    app.run(debug=True, port=8000)
