# -*- coding: utf-8 -*-
"""
LendPulse - API routes
JSON endpoints for the lending dashboard

IMPORTANT: every figure comes from analytics_service!
All views share one classifier and one aggregator, so the numbers agree
across charts.

Tenant: X-Tenant-ID header or tenant_id query argument.
Common query arguments: date_range, start, end, region, branch, sort_by,
direction, limit, as_of.
"""

import logging
from datetime import datetime
from decimal import Decimal

from flask import Blueprint, Response, jsonify, request

from config import APP_CONFIG, DIMENSIONS
from lendpulse.services.analytics_service import analytics_service
from lendpulse.services.core_engine import AnalyticsRequest
from lendpulse.services.export_service import ExportFormat, VIEW_COLUMNS, export_service
from lendpulse.services.ledger_service import LedgerShapeError

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)

MIMETYPES = {
    ExportFormat.CSV: 'text/csv',
    ExportFormat.EXCEL: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}


def decimal_to_float(obj):
    """Convert Decimal to float for JSON"""
    if isinstance(obj, Decimal):
        return float(obj)
    elif isinstance(obj, dict):
        return {k: decimal_to_float(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [decimal_to_float(i) for i in obj]
    return obj


def _tenant_id() -> str:
    tenant_id = request.headers.get('X-Tenant-ID') or request.args.get('tenant_id')
    if not tenant_id:
        raise ValueError("Tenant is required: send the X-Tenant-ID header or a tenant_id argument")
    return tenant_id


def _build_request(dimension=None) -> AnalyticsRequest:
    """AnalyticsRequest from the query string"""
    args = request.args
    payload = {
        'tenant_id': _tenant_id(),
        'date_range': args.get('date_range'),
        'region_id': args.get('region'),
        'branch_id': args.get('branch'),
        'sort_by': args.get('sort_by'),
        'direction': args.get('direction'),
        'limit': args.get('limit'),
        'as_of': args.get('as_of'),
        'dimension': dimension,
    }
    start, end = args.get('start'), args.get('end')
    if start or end:
        payload['custom_window'] = {'start': start, 'end': end}

    return AnalyticsRequest.model_validate({k: v for k, v in payload.items() if v is not None})


def _error(message: str, code: int):
    return jsonify({'status': 'error', 'message': message}), code


def _view_response(compute):
    """Run a view and map failures: bad request 400, malformed ledger rows 422, anything else 500"""
    try:
        result = compute()
        return jsonify({'status': 'ok', **decimal_to_float(result.to_dict())})
    except LedgerShapeError as e:
        logger.error(f"Ledger rows rejected: {str(e)}")
        return _error(str(e), 422)
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.exception(f"Analytics view failed: {str(e)}")
        return _error('Internal error while computing analytics', 500)


@api_bp.route('/health', methods=['GET'])
def health():
    """API health check"""
    return jsonify({
        'status': 'ok',
        'app': APP_CONFIG['APP_NAME'],
        'version': APP_CONFIG['VERSION'],
        'company': APP_CONFIG['COMPANY'],
        'timestamp': datetime.now().isoformat(),
    })


@api_bp.route('/analytics/dimensions/<dimension>', methods=['GET'])
def dimension_performance(dimension):
    """
    Portfolio performance per dimension value

    Dimensions: branch, region, product, county, marital_status,
    age_bracket, loyalty_tier, gender, business_type. Records carry
    customerCount and avgDailySales alongside the money totals. Default order: disbursed, descending.
    """
    return _view_response(lambda: analytics_service.dimension_performance(_build_request(dimension)))


@api_bp.route('/analytics/trends', methods=['GET'])
def repayment_trends():
    """Collections per day (week, month, short custom) or per month"""
    return _view_response(lambda: analytics_service.repayment_trends(_build_request()))


@api_bp.route('/analytics/collections/daily', methods=['GET'])
def daily_collections():
    """Collections for each of the last 30 days"""
    return _view_response(lambda: analytics_service.daily_collections(_build_request()))


@api_bp.route('/analytics/payer-types', methods=['GET'])
def payer_types():
    """Share of collections by who paid"""
    return _view_response(lambda: analytics_service.payer_types(_build_request()))


@api_bp.route('/analytics/npl', methods=['GET'])
def npl_loans():
    """
    Non-performing loans (90+ days overdue with arrears)

    sort_by: amount (default), percentage, days. Top 10 unless limit is given.
    """
    return _view_response(lambda: analytics_service.npl_loans(_build_request()))


@api_bp.route('/analytics/overdue', methods=['GET'])
def overdue_loans():
    """Loans with any arrears"""
    return _view_response(lambda: analytics_service.overdue_loans(_build_request()))


@api_bp.route('/analytics/loyalty', methods=['GET'])
def loyalty():
    """Customers per loyalty tier"""
    return _view_response(lambda: analytics_service.loyalty(_build_request()))


@api_bp.route('/analytics/dashboard', methods=['GET'])
def dashboard():
    """Several views in one call; `views` is a comma-separated subset"""
    try:
        analytics_request = _build_request()
        views = [v.strip() for v in request.args.get('views', '').split(',') if v.strip()] or None
        results = analytics_service.dashboard(analytics_request, views)
        return jsonify({
            'status': 'ok',
            'views': {name: decimal_to_float(result.to_dict()) for name, result in results.items()},
        })
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.exception(f"Dashboard failed: {str(e)}")
        return _error('Internal error while computing analytics', 500)


@api_bp.route('/analytics/export/<view>', methods=['GET'])
def export_view(view):
    """
    Download a view as CSV or Excel

    format: csv (default) or xlsx. For view=dimension pass dimension=<name>.
    """
    fmt = request.args.get('format', ExportFormat.CSV).lower()
    if fmt not in ExportFormat.ALL:
        return _error(f"Unsupported export format '{fmt}'. Use csv or xlsx", 400)

    try:
        dimension = request.args.get('dimension') if view == 'dimension' else None
        analytics_request = _build_request(dimension)
        result = analytics_service.view(view, analytics_request)
        columns = VIEW_COLUMNS.get(result.view.split(':', 1)[0])

        if fmt == ExportFormat.CSV:
            content = export_service.to_csv(result.records, columns)
        else:
            content = export_service.to_excel(result.records, sheet_name=result.view.replace(':', ' '),
                                              columns=columns, title=APP_CONFIG['APP_NAME'])

        filename = export_service.filename(result.view, fmt, analytics_service.today(analytics_request))
        return Response(
            content,
            mimetype=MIMETYPES[fmt],
            headers={'Content-Disposition': f'attachment; filename={filename}'},
        )
    except LedgerShapeError as e:
        logger.error(f"Ledger rows rejected: {str(e)}")
        return _error(str(e), 422)
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.exception(f"Export of {view} failed: {str(e)}")
        return _error('Internal error while exporting', 500)


@api_bp.route('/filters/options', methods=['GET'])
def filter_options():
    """Regions and the branches selectable under ?region=<id|name>"""
    try:
        options = analytics_service.filter_options(_tenant_id(), request.args.get('region'))
        return jsonify({'status': 'ok', 'dimensions': list(DIMENSIONS), **options})
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.exception(f"Filter options failed: {str(e)}")
        return _error('Internal error while loading filters', 500)
