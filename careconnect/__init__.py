from flask import Flask, request, jsonify, g, Response
from flask_migrate import Migrate
from flask_cors import CORS
from careconnect.config import Config
from careconnect.models import db
from careconnect.auth import role_required
from careconnect.errors import BillingError, CompanyNotFoundError, InvoiceNotFoundError, UserNotFoundError
from careconnect.rates import DEFAULT_RATE_TABLE, get_billing_config, save_billing_config, rate_table_to_dict
from careconnect.roles import Role
from datetime import datetime
from decimal import Decimal, InvalidOperation
import time
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)
# fallback rate table used whenever the stored configuration cannot be read
app.config.setdefault("BILLING_DEFAULT_RATES", DEFAULT_RATE_TABLE)
CORS(app)

db.init_app(app)
migrate = Migrate(app, db)

BILLING_VIEWERS = (Role.ADMIN, Role.TEAM_LEADER, Role.COORDINATOR, Role.CONSOLE_MANAGER)


def current_rate_table():
    return get_billing_config(fallback=app.config["BILLING_DEFAULT_RATES"])


def current_suspension_config():
    from careconnect.suspension import suspension_config_from_app
    return suspension_config_from_app(app.config)


def _not_found(e):
    return jsonify({"message": str(e)}), 404


@app.before_request
def debug_routes():
    """Log which API route is being served"""
    if request.path.startswith('/api/') or request.path.startswith('/admin/'):
        logger.info(f"API Route: {request.path} - Method: {request.method}")

# ========== HEALTH CHECK ==========
@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ALB"""
    try:
        from sqlalchemy import text
        db.session.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"

    health_status = {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
        "timestamp": time.time()
    }

    status_code = 200 if health_status["status"] == "healthy" else 503
    return jsonify(health_status), status_code

# ========== BILLING ENDPOINTS ==========
@app.route("/api/billing/summary", methods=["GET"])
@role_required(*BILLING_VIEWERS)
def billing_summary():
    """Usage analytics for the caller's tenant, or every company for console managers"""
    try:
        from careconnect.billing import calculate_all_company_billing, calculate_tenant_billing

        rate_table = current_rate_table()
        if g.role == Role.CONSOLE_MANAGER:
            analytics = calculate_all_company_billing(rate_table)
            scope = "all"
        else:
            if g.tenant_id is None:
                return jsonify({"message": "No tenant_id in token"}), 400
            analytics = calculate_tenant_billing(g.tenant_id, rate_table)
            scope = "tenant"

        data = analytics.to_dict()
        data["scope"] = scope
        return jsonify(data)
    except Exception as e:
        logger.error(f"Failed to get billing summary: {e}")
        return jsonify({"message": f"Failed to get billing summary: {str(e)}"}), 500

@app.route("/api/billing/companies/<company_id>", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def company_billing(company_id):
    """Current billing for a single company"""
    try:
        from careconnect.billing import calculate_company_billing

        billing = calculate_company_billing(company_id, current_rate_table())
        if billing is None:
            return jsonify({"message": "No active staff found for company"}), 404
        return jsonify(billing.to_dict())
    except Exception as e:
        logger.error(f"Failed to get company billing: {e}")
        return jsonify({"message": f"Failed to get company billing: {str(e)}"}), 500

# ========== BILLING ADMIN ENDPOINTS ==========
@app.route("/admin/billing/report", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def billing_report():
    """Plain-text billing summary"""
    try:
        from careconnect.billing import generate_billing_summary
        report = generate_billing_summary(current_rate_table())
        return Response(report, mimetype="text/plain")
    except Exception as e:
        logger.error(f"Failed to generate billing report: {e}")
        return jsonify({"message": f"Failed to generate billing report: {str(e)}"}), 500

@app.route("/admin/billing/configuration", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def get_configuration():
    return jsonify(rate_table_to_dict(current_rate_table()))

@app.route("/admin/billing/configuration", methods=["PUT"])
@role_required(Role.CONSOLE_MANAGER)
def update_configuration():
    """Update rates, cycle length, next billing date or the active flag"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"message": "No JSON data received or invalid JSON"}), 400

    if "is_active" in data and not isinstance(data["is_active"], bool):
        return jsonify({"message": "is_active must be true or false"}), 400

    rates = data.get("rates")
    next_billing_date = data.get("next_billing_date")
    try:
        if rates is not None:
            if not isinstance(rates, dict):
                return jsonify({"message": "rates must be an object of role -> amount"}), 400
            rates = {role: Decimal(str(amount)) for role, amount in rates.items()}
            if any(amount < 0 for amount in rates.values()):
                return jsonify({"message": "rates must not be negative"}), 400
        if next_billing_date is not None:
            next_billing_date = datetime.fromisoformat(next_billing_date)
    except (InvalidOperation, ValueError, TypeError) as e:
        return jsonify({"message": f"Invalid configuration: {str(e)}"}), 400

    try:
        table = save_billing_config(
            rates=rates,
            cycle_days=data.get("cycle_days"),
            next_billing_date=next_billing_date,
            is_active=data.get("is_active"),
        )
        return jsonify(rate_table_to_dict(table))
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception as e:
        logger.error(f"Failed to update billing configuration: {e}")
        return jsonify({"message": f"Failed to update billing configuration: {str(e)}"}), 500

@app.route("/admin/billing/staff/<int:user_id>/status", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def staff_status(user_id):
    """Activate or deactivate a single staff member"""
    data = request.get_json(silent=True) or {}
    if "is_active" not in data:
        return jsonify({"message": "Missing required field: is_active"}), 400
    if not isinstance(data["is_active"], bool):
        return jsonify({"message": "is_active must be true or false"}), 400
    try:
        from careconnect.billing import update_staff_billing_status
        user = update_staff_billing_status(user_id, data["is_active"])
        return jsonify({
            "user_id": user.id,
            "is_active": user.is_active,
            "last_billing_sync": user.last_billing_sync.isoformat()
        })
    except UserNotFoundError as e:
        return _not_found(e)
    except Exception as e:
        logger.error(f"Failed to update staff status: {e}")
        return jsonify({"message": f"Failed to update staff status: {str(e)}"}), 500

# ========== SUSPENSION ENDPOINTS ==========
@app.route("/admin/billing/suspensions/candidates", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def suspension_candidates():
    """Companies overdue beyond the grace period"""
    try:
        from careconnect.suspension import get_companies_for_auto_suspension, candidate_to_dict
        companies = get_companies_for_auto_suspension(current_suspension_config())
        return jsonify({"companies": [candidate_to_dict(c) for c in companies], "count": len(companies)})
    except Exception as e:
        logger.error(f"Failed to list suspension candidates: {e}")
        return jsonify({"message": f"Failed to list suspension candidates: {str(e)}"}), 500

@app.route("/admin/billing/suspensions/warnings", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def suspension_warnings():
    """Companies due a suspension warning today"""
    try:
        from careconnect.suspension import get_companies_for_suspension_warning, candidate_to_dict
        companies = get_companies_for_suspension_warning(current_suspension_config())
        return jsonify({"companies": [candidate_to_dict(c) for c in companies], "count": len(companies)})
    except Exception as e:
        logger.error(f"Failed to list suspension warnings: {e}")
        return jsonify({"message": f"Failed to list suspension warnings: {str(e)}"}), 500

@app.route("/admin/billing/suspensions/run", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def run_suspensions():
    """Run the automatic suspension sweep now"""
    try:
        from careconnect.suspension import process_auto_suspensions
        return jsonify(process_auto_suspensions(current_suspension_config()))
    except Exception as e:
        logger.error(f"Auto suspension run failed: {e}")
        return jsonify({"message": f"Auto suspension run failed: {str(e)}"}), 500

@app.route("/admin/billing/companies/<company_id>/suspend", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def suspend_company(company_id):
    try:
        from careconnect.suspension import suspend_company_access
        count = suspend_company_access(company_id)
        return jsonify({"company_id": company_id, "status": "suspended", "users_deactivated": count})
    except CompanyNotFoundError as e:
        return _not_found(e)
    except Exception as e:
        logger.error(f"Failed to suspend company {company_id}: {e}")
        return jsonify({"message": f"Failed to suspend company: {str(e)}"}), 500

@app.route("/admin/billing/companies/<company_id>/restore", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def restore_company(company_id):
    try:
        from careconnect.suspension import restore_company_access
        count = restore_company_access(company_id)
        return jsonify({"company_id": company_id, "status": "active", "users_reactivated": count})
    except CompanyNotFoundError as e:
        return _not_found(e)
    except Exception as e:
        logger.error(f"Failed to restore company {company_id}: {e}")
        return jsonify({"message": f"Failed to restore company: {str(e)}"}), 500

# ========== INVOICE ENDPOINTS ==========
@app.route("/admin/billing/companies/<company_id>/invoices", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def create_invoice(company_id):
    """Issue an invoice for the company's current billing period"""
    data = request.get_json(silent=True) or {}
    try:
        period_start = data.get("period_start")
        period_start = datetime.fromisoformat(period_start) if period_start else None
    except (ValueError, TypeError) as e:
        return jsonify({"message": f"Invalid period_start: {str(e)}"}), 400

    try:
        from careconnect.invoices import issue_invoice, invoice_to_dict
        invoice = issue_invoice(company_id, period_start, current_rate_table())
        return jsonify(invoice_to_dict(invoice)), 201
    except CompanyNotFoundError as e:
        return _not_found(e)
    except BillingError as e:
        return jsonify({"message": str(e)}), 400
    except Exception as e:
        logger.error(f"Failed to issue invoice for {company_id}: {e}")
        return jsonify({"message": f"Failed to issue invoice: {str(e)}"}), 500

@app.route("/admin/billing/companies/<company_id>/invoices", methods=["GET"])
@role_required(Role.CONSOLE_MANAGER)
def list_company_invoices(company_id):
    try:
        from careconnect.invoices import invoice_history, invoice_to_dict
        limit = request.args.get("limit", 12, type=int)
        invoices = [invoice_to_dict(inv) for inv in invoice_history(company_id, limit)]
        return jsonify({
            "company_id": company_id,
            "invoices": invoices,
            "count": len(invoices),
            "total_amount": sum(inv["total_amount"] for inv in invoices)
        })
    except Exception as e:
        logger.error(f"Failed to get invoices for {company_id}: {e}")
        return jsonify({"message": f"Failed to get invoices: {str(e)}"}), 500

@app.route("/admin/billing/invoices/<int:invoice_id>/pay", methods=["POST"])
@role_required(Role.CONSOLE_MANAGER)
def pay_invoice(invoice_id):
    """Record payment; restores a billing-suspended company once nothing else is overdue"""
    data = request.get_json(silent=True) or {}
    try:
        from careconnect.invoices import mark_invoice_paid, invoice_to_dict
        invoice = mark_invoice_paid(invoice_id, data.get("payment_reference"), config=current_suspension_config())
        return jsonify(invoice_to_dict(invoice))
    except InvoiceNotFoundError as e:
        return _not_found(e)
    except BillingError as e:
        return jsonify({"message": str(e)}), 400
    except Exception as e:
        logger.error(f"Failed to mark invoice {invoice_id} paid: {e}")
        return jsonify({"message": f"Failed to mark invoice paid: {str(e)}"}), 500

# Error handlers
@app.errorhandler(404)
def not_found(error):
    return jsonify({"message": "Endpoint not found"}), 404

@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({
        "message": "Method not allowed",
        "error": str(error.description)
    }), 405

@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal server error: {error}")
    return jsonify({"message": "Internal server error"}), 500
