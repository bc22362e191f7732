# lab_core/tests/helpers.py

def scoped(tenant_id, facility_id):
    return {
        "HTTP_X_TENANT_ID": str(tenant_id),
        "HTTP_X_FACILITY_ID": str(facility_id),
    }
