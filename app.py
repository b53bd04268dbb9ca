"""
Flask application entry point
"""
import os
import sys
from pathlib import Path
# Add the backend directory to Python path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from access_gate import create_app  # noqa: E402
from config import Config  # noqa: E402

app = create_app()

if __name__ == '__main__':
    # Warn when invitation e-mails will only be logged
    Config.validate_email_settings()

    app.run(
        host='0.0.0.0',
        port=int(os.environ.get('PORT', 5000)),
        debug=os.environ.get('FLASK_ENV') == 'development'
    )
