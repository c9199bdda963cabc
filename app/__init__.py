"""League admin provisioning service package.

To use the Flask app:
    from app.flask_app import create_app

To use the Supabase client:
    from app.core.supabase import SupabaseClient, AuthAdminService, TableService

To use the provisioning workflows:
    from app.core.provisioning_service import ProvisioningService
"""
# Note: We don't import flask_app by default to avoid Flask dependency
# for CLI scripts that only use app.core
