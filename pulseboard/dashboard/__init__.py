# pulseboard/dashboard/__init__.py
"""
Dashboard module: tenants, client sessions and aggregated metrics.

Import the router from pulseboard.dashboard.router; this package init stays
free of imports so the core auth layer can depend on the data layer.
"""

MODULE_NAME = 'dashboard'

# Demo tenant created by seed_demo_data
DEMO_TENANT = {
    'name': 'Demo Company',
    'domain': 'demo.example.com',
    'google_analytics_property_id': 'GA_DEMO_123',
    'search_console_url': 'https://demo.example.com',
}

DEMO_CLIENT = {
    'email': 'demo@example.com',
    'name': 'Demo User',
    'password': 'demo123',
    'role': 'admin',
}

DEMO_DAYS = 30
