"""
Application entry point.

Usage:
    python run.py

Starts the Flask development server on http://localhost:5000.
Demo credentials: demo@example.com / SecureP@ss123!
"""

from gatekeeper import create_app

app = create_app()

if __name__ == '__main__':
    print('\n  Gatekeeper request-integrity pipeline')
    print('  =====================================')
    print('  Demo credentials: demo@example.com / SecureP@ss123!')
    print('  Challenge: GET http://localhost:5000/captcha/challenge\n')

    app.run(
        host='127.0.0.1',
        port=5000,
        debug=True,
    )
