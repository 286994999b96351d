# -*- coding: utf-8 -*-
"""
LendPulse - Development server entry point
"""

import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from lendpulse import create_app
from config import APP_CONFIG

app = create_app()

if __name__ == '__main__':
    print("=" * 60)
    print(f"{APP_CONFIG['APP_NAME']} {APP_CONFIG['VERSION']}")
    print(APP_CONFIG['APP_SUBTITLE'])
    print("=" * 60)
    print()
    print("Serving on http://127.0.0.1:5000")
    print("=" * 60)

    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', host='127.0.0.1', port=5000)
