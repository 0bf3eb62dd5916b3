"""
Flask API for the Roofing Estimation Engine
Macro pricing, estimate acceptance, formula tools, photo measurement merging
and job billing schedules as JSON endpoints
"""

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from dataclasses import fields
from datetime import datetime
from io import BytesIO
import logging
from typing import Dict

from roofbid.billing import BillingService
from roofbid.config import Settings, load_settings
from roofbid.errors import ConflictError, NotFoundError, RoofBidError, ValidationError
from roofbid.formula_parser import (
    CATEGORY_FORMULAS, COMMON_FORMULAS, evaluate_formula, format_formula, suggested_formula,
    validate_formula,
)
from roofbid.models.billing import BILLING_TEMPLATES
from roofbid.models.catalog import CatalogSnapshot, load_catalog
from roofbid.models.estimate import EstimateStatus, PricedEstimate
from roofbid.models.roof_variables import (
    RoofVariables, format_variables_for_display, validate_variables, variables_from_dimensions,
)
from roofbid.pdf_generator import EstimatePDFGenerator
from roofbid.photo_merger import merge_raw_results
from roofbid.pricing_engine import apply_macro_by_id, estimate_summary, group_line_items, recalculate_estimate
from roofbid.pricing_tiers import calculate_pricing_tiers, monthly_payment
from roofbid.quick_estimate import quick_estimate
from roofbid.storage import EstimateStore
from roofbid.utils import (
    format_quote_range, round_money, validate_apply_macro_request, validate_billing_template_request,
    validate_contract_request, validate_dimensions_request, validate_estimate_response_request,
    validate_formula_request, validate_photo_results_request, validate_quick_estimate_request,
    validate_selections_request, validate_status_request,
)

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for frontend integration

# One store per database path, created on first use
_stores: Dict[str, EstimateStore] = {}


def configure_app(settings: Settings) -> Flask:
    """Copy settings into app.config"""
    app.config['SECRET_KEY'] = settings.secret_key
    app.config.update(settings.to_flask_config())
    return app


configure_app(load_settings())


def get_store() -> EstimateStore:
    db_path = app.config['ROOFBID_DB_PATH']
    store = _stores.get(db_path)
    if store is None:
        store = EstimateStore(db_path)
        _stores[db_path] = store
    return store


def get_catalog() -> CatalogSnapshot:
    return load_catalog(app.config['ROOFBID_CATALOG_PATH'])


def current_settings() -> Settings:
    return Settings(**{
        f.name: app.config[f'ROOFBID_{f.name.upper()}']
        for f in fields(Settings)
        if f'ROOFBID_{f.name.upper()}' in app.config
    })


def _json_body() -> Dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data


def _check(errors):
    if errors:
        raise ValidationError('Invalid request', {'errors': errors})


@app.errorhandler(RoofBidError)
def handle_roofbid_error(e: RoofBidError):
    if e.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.path, e.message)
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(500)
def handle_internal_error(e):
    logger.error("Unhandled error on %s %s", request.method, request.path,
                 exc_info=getattr(e, 'original_exception', None) or e)
    return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'service': 'roofbid-estimator',
        'catalog_version': get_catalog().version,
    })


# ---------- macros ----------

@app.route('/api/macros', methods=['GET'])
def list_macros():
    """List macros, most used first"""
    catalog = get_catalog()
    counts = get_store().macro_usage_counts()

    macros = []
    for macro in catalog.macros.values():
        data = macro.to_dict()
        data['usage_count'] = counts.get(macro.id, 0)
        macros.append(data)
    macros.sort(key=lambda m: (-m['usage_count'], m['name']))

    return jsonify({'macros': macros, 'count': len(macros)})


def _price_request(macro_id: str, data: Dict, require_lead: bool = True) -> PricedEstimate:
    """Validate a macro request body and price it against the current catalog"""
    _check(validate_apply_macro_request(data, require_lead))

    variables = RoofVariables.from_dict(data['variables'])
    errors, _ = validate_variables(variables)
    _check(errors)

    settings = current_settings()
    catalog = get_catalog()

    pricing_id = data.get('geographic_pricing_id')
    if not pricing_id and data.get('zip_code'):
        region = catalog.pricing_for_zip(data['zip_code'])
        pricing_id = region.id if region else None

    def percent(field, default):
        return default if data.get(field) is None else data[field]

    return apply_macro_by_id(
        catalog,
        macro_id,
        variables,
        geographic_pricing_id=pricing_id,
        overhead_percent=percent('overhead_percent', settings.default_overhead_percent),
        profit_percent=percent('profit_percent', settings.default_profit_percent),
        tax_percent=percent('tax_percent', settings.default_tax_percent),
        selections=data.get('selections'),
    )


def _estimate_response(estimate: PricedEstimate) -> Dict:
    variables = RoofVariables.from_dict(estimate.variables)
    _, warnings = validate_variables(variables)
    return {
        'estimate': estimate.to_dict(),
        'summary': estimate_summary(estimate),
        'groups': {
            group: [line.line_item_id for line in lines]
            for group, lines in group_line_items(estimate.line_items).items()
        },
        'variable_warnings': warnings,
    }


@app.route('/api/macros/<macro_id>/apply', methods=['POST'])
def apply_macro_route(macro_id):
    """Price a macro and save it as a draft estimate for the lead"""
    data = _json_body()
    estimate = _price_request(macro_id, data)

    store = get_store()
    store.save_estimate(
        data['lead_id'],
        estimate,
        name=data.get('name') or estimate.macro_name,
        sketch_id=data.get('sketch_id'),
        valid_days=current_settings().estimate_valid_days,
    )
    store.increment_macro_usage(macro_id)

    response = _estimate_response(estimate)
    response['success'] = True
    return jsonify(response), 201


@app.route('/api/macros/<macro_id>/preview', methods=['POST'])
def preview_macro(macro_id):
    """Price a macro without saving anything"""
    estimate = _price_request(macro_id, _json_body(), require_lead=False)
    return jsonify(_estimate_response(estimate))


# ---------- estimates ----------

@app.route('/api/estimates/quick', methods=['POST'])
def quick_estimate_route():
    """Rule-based price band from intake answers, before the roof is measured"""
    data = _json_body()
    _check(validate_quick_estimate_request(data))

    result = quick_estimate(data)
    response = result.to_dict()
    response['quote_range'] = format_quote_range(result.price_low, result.price_high)
    return jsonify(response)


@app.route('/api/leads/<lead_id>/estimates', methods=['GET'])
def list_lead_estimates(lead_id):
    """Every estimate for the lead, newest first; lapsed ones are marked expired"""
    store = get_store()
    store.expire_stale_estimates()
    estimates = store.list_estimates(lead_id)
    return jsonify({
        'lead_id': lead_id,
        'estimates': [e.to_dict() for e in estimates],
        'count': len(estimates),
    })

@app.route('/api/estimates/<estimate_id>', methods=['GET'])
def get_estimate(estimate_id):
    estimate = get_store().get_estimate(estimate_id)
    return jsonify(_estimate_response(estimate))


@app.route('/api/estimates/<estimate_id>', methods=['PATCH'])
def update_estimate_selections(estimate_id):
    """Toggle optional lines on a draft estimate and re-price it"""
    data = _json_body()
    _check(validate_selections_request(data))

    store = get_store()
    estimate = store.get_estimate(estimate_id)
    if estimate.status != EstimateStatus.DRAFT:
        raise ConflictError("Only draft estimates can be changed",
                            {"estimate_id": estimate_id, "status": estimate.status.value})

    updated = recalculate_estimate(estimate, get_catalog(), data['selections'])
    store.update_estimate(updated)
    return jsonify(_estimate_response(updated))


@app.route('/api/estimates/<estimate_id>/pdf', methods=['GET'])
def estimate_pdf(estimate_id):
    """Download the estimate as a PDF"""
    estimate = get_store().get_estimate(estimate_id)
    pdf_bytes = EstimatePDFGenerator(estimate, current_settings()).generate_bytes()

    return send_file(
        BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"Roofing_Estimate_{estimate_id}_{datetime.now().strftime('%Y%m%d')}.pdf"
    )


@app.route('/api/estimates/<estimate_id>/tiers', methods=['GET'])
def estimate_tiers(estimate_id):
    """Good/better/best options derived from the estimate's price band"""
    estimate = get_store().get_estimate(estimate_id)
    tiers = calculate_pricing_tiers(
        estimate.price_low,
        estimate.price_likely,
        estimate.price_high,
        material=request.args.get('material'),
        recommended=request.args.get('recommended', 'better'),
    )

    payload = []
    for tier in tiers:
        data = tier.to_dict()
        data['monthly_payment'] = monthly_payment(tier.price_likely)
        payload.append(data)

    return jsonify({'estimate_id': estimate_id, 'tiers': payload})


def _respond(lead_id: str, status: EstimateStatus):
    data = _json_body()
    _check(validate_estimate_response_request(data))
    store = get_store()
    store.expire_stale_estimates()

    estimate_id = data.get('estimate_id')
    if estimate_id:
        estimate = store.get_estimate(estimate_id)
        if estimate.lead_id != lead_id:
            raise NotFoundError(f"Estimate not found for lead {lead_id}: {estimate_id}")
    else:
        estimate = store.latest_estimate(lead_id)

    if status == EstimateStatus.ACCEPTED:
        updated = store.respond_to_estimate(
            estimate.id, status,
            responder=data.get('accepted_by_name'),
            notes=data.get('signature'),
        )
    else:
        updated = store.respond_to_estimate(
            estimate.id, status,
            responder=data.get('rejected_by_name'),
            notes=data.get('reason'),
        )

    response = {'success': True, 'estimate': updated.to_dict()}
    if status == EstimateStatus.ACCEPTED:
        job = store.job_for_estimate(updated.id)
        response['job'] = job.to_dict() if job else None
    return jsonify(response)


@app.route('/api/leads/<lead_id>/estimate/accept', methods=['POST'])
def accept_estimate(lead_id):
    """Accept the lead's estimate (the given one, else the most recent)"""
    return _respond(lead_id, EstimateStatus.ACCEPTED)


@app.route('/api/leads/<lead_id>/estimate/reject', methods=['POST'])
def reject_estimate(lead_id):
    return _respond(lead_id, EstimateStatus.REJECTED)


# ---------- formulas and variables ----------

@app.route('/api/formulas', methods=['GET'])
def list_formulas():
    """Common quantity formulas, or the suggestion for one line item category"""
    category = request.args.get('category')
    if category:
        formula = suggested_formula(category)
        if formula is None:
            raise NotFoundError(f"No suggested formula for category: {category}",
                                {'available': sorted(CATEGORY_FORMULAS)})
        return jsonify({'category': category, 'formula': formula, 'formatted': format_formula(formula)})

    return jsonify({
        'formulas': COMMON_FORMULAS,
        'categories': {name: suggested_formula(name) for name in CATEGORY_FORMULAS},
    })

@app.route('/api/formulas/validate', methods=['POST'])
def validate_formula_route():
    data = _json_body()
    _check(validate_formula_request(data))

    valid, error, names = validate_formula(data['formula'])
    return jsonify({
        'valid': valid,
        'error': error,
        'variables': names,
        'formatted': format_formula(data['formula']) if valid else None,
    })


@app.route('/api/formulas/evaluate', methods=['POST'])
def evaluate_formula_route():
    """Evaluate a formula; malformed formulas are a 400"""
    data = _json_body()
    _check(validate_formula_request(data, require_variables=True))

    variables = RoofVariables.from_dict(data['variables'])
    quantity = evaluate_formula(data['formula'], variables, data.get('slope_id'))
    waste_factor = data.get('waste_factor') or 1.0

    return jsonify({
        'formula': data['formula'],
        'quantity': round_money(quantity),
        'waste_factor': waste_factor,
        'quantity_with_waste': round_money(max(0.0, quantity) * waste_factor),
    })


@app.route('/api/variables/from-dimensions', methods=['POST'])
def variables_from_dimensions_route():
    """Approximate roof variables for a rectangular gable roof"""
    data = _json_body()
    _check(validate_dimensions_request(data))

    options = {field: data[field] for field in
               ('skylights', 'chimneys', 'pipe_boots', 'vents', 'gutter_lf', 'downspouts')
               if data.get(field) is not None}
    variables = variables_from_dimensions(data['length_ft'], data['width_ft'], data['pitch'], **options)
    errors, warnings = validate_variables(variables)

    return jsonify({
        'variables': variables.to_dict(),
        'display': format_variables_for_display(variables),
        'errors': errors,
        'warnings': warnings,
    })


@app.route('/api/photo-measurements/merge', methods=['POST'])
def merge_photo_measurements():
    """Combine several per-photo analyses of one roof"""
    data = _json_body()
    _check(validate_photo_results_request(data))

    merged = merge_raw_results(data['results'])
    return jsonify({'success': True, 'measurement': merged.to_dict()})


# ---------- jobs and billing ----------

@app.route('/api/jobs/<job_id>/billing-schedule', methods=['GET'])
def get_billing_schedule(job_id):
    store = get_store()
    job = store.get_job(job_id)
    milestones = store.billing_schedule(job_id)

    return jsonify({
        'job': job.to_dict(),
        'milestones': [m.to_dict() for m in milestones],
        'total_percentage': sum(m.percentage for m in milestones),
        'templates': [t.to_dict() for t in BILLING_TEMPLATES],
    })


@app.route('/api/jobs/<job_id>/billing-schedule', methods=['POST'])
def apply_billing_template(job_id):
    """Replace the job's billing schedule from a template name or custom milestones"""
    data = _json_body()
    _check(validate_billing_template_request(data))

    store = get_store()
    contract = data.get('contract_amount')
    if contract is None:
        contract = store.get_job(job_id).contract_amount

    template = data.get('milestones') or data.get('template_name')
    milestones = BillingService(store).apply_template(job_id, contract, template)

    return jsonify({
        'success': True,
        'milestones': [m.to_dict() for m in milestones],
    }), 201


@app.route('/api/jobs/<job_id>/billing-schedule', methods=['PUT'])
def recalculate_billing_schedule(job_id):
    """Re-price un-invoiced milestones for a new contract amount"""
    data = _json_body()
    _check(validate_contract_request(data))

    milestones = BillingService(get_store()).recalculate(job_id, data['contract_amount'])
    return jsonify({
        'success': True,
        'milestones': [m.to_dict() for m in milestones],
    })


@app.route('/api/jobs/<job_id>/status', methods=['PATCH'])
def update_job_status(job_id):
    """Move a job through its workflow and invoice any triggered milestones"""
    data = _json_body()
    _check(validate_status_request(data))

    result = BillingService(get_store()).transition_job(job_id, data['status'])
    return jsonify({
        'success': True,
        'job': result['job'].to_dict(),
        'invoices': [invoice.to_dict() for invoice in result['invoices']],
    })
