"""
WSGI entry point: `gunicorn -c gunicorn.conf.py run:app`, or
`python run.py` for a local development server.
"""
import os

from pointsledger import create_app

app = create_app(os.getenv('FLASK_ENV', 'production'))

if __name__ == '__main__':
    app.run(port=int(os.getenv('PORT', 5000)), debug=app.config.get('DEBUG', False))
