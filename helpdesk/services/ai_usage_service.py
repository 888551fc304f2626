"""
AI usage tracking and cost reporting
"""
import logging
from datetime import datetime, timedelta
from helpdesk import db
from helpdesk.models.ai_usage import AIUsage

logger = logging.getLogger(__name__)

# USD per 1M tokens
PRICING = {
    'anthropic': {
        'claude-haiku-4-5-20251001': {'input': 1.00, 'output': 5.00},
        'claude-sonnet-4-5-20250929': {'input': 3.00, 'output': 15.00},
        'claude-3-5-haiku-20241022': {'input': 1.00, 'output': 5.00},
        'claude-3-5-sonnet-20241022': {'input': 3.00, 'output': 15.00},
        'claude-3-opus-20240229': {'input': 15.00, 'output': 75.00},
        'default': {'input': 1.00, 'output': 5.00},
    },
}


def calculate_cost(provider, model, input_tokens, output_tokens):
    """
    Returns:
        tuple: (input_cost, output_cost) in USD
    """
    provider_pricing = PRICING.get(provider, PRICING['anthropic'])
    model_pricing = provider_pricing.get(model, provider_pricing['default'])
    input_cost = input_tokens / 1_000_000 * model_pricing['input']
    output_cost = output_tokens / 1_000_000 * model_pricing['output']
    return input_cost, output_cost


def track_ai_usage(tenant_id, model, feature, input_tokens, output_tokens, provider='anthropic',
                   ticket_id=None, user_id=None, response_time_ms=None):
    """
    Record one LLM call. Failures are logged and swallowed so tracking
    never breaks the request that made the call.

    Returns:
        AIUsage or None
    """
    try:
        input_cost, output_cost = calculate_cost(provider, model, input_tokens, output_tokens)
        usage = AIUsage(
            tenant_id=tenant_id,
            provider=provider,
            model=model,
            feature=feature,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
            ticket_id=ticket_id,
            user_id=user_id,
            response_time_ms=response_time_ms
        )
        db.session.add(usage)
        db.session.commit()
        return usage
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to track AI usage: {e}")
        return None


def get_usage_stats(tenant_id, days=30):
    """
    Aggregate usage over the last `days` days

    Returns:
        dict: stats totals, daily_usage (ascending by date), feature_usage and
        model_usage (descending by cost), recent_usage (last 20 calls)
    """
    since = datetime.utcnow() - timedelta(days=days)
    records = AIUsage.query.filter(
        AIUsage.tenant_id == tenant_id,
        AIUsage.created_at >= since
    ).order_by(AIUsage.created_at.desc()).all()

    timed = [r.response_time_ms for r in records if r.response_time_ms]
    stats = {
        'total_requests': len(records),
        'total_tokens': sum(r.total_tokens for r in records),
        'input_tokens': sum(r.input_tokens for r in records),
        'output_tokens': sum(r.output_tokens for r in records),
        'total_cost': round(sum(r.total_cost for r in records), 6),
        'avg_response_time_ms': round(sum(timed) / len(timed)) if timed else 0,
    }

    daily = {}
    by_feature = {}
    by_model = {}
    for record in records:
        day = record.created_at.date().isoformat()
        for bucket, key, extra in (
            (daily, day, {'date': day}),
            (by_feature, record.feature, {'feature': record.feature}),
            (by_model, (record.provider, record.model), {'provider': record.provider, 'model': record.model}),
        ):
            entry = bucket.setdefault(key, dict(extra, requests=0, tokens=0, cost=0.0))
            entry['requests'] += 1
            entry['tokens'] += record.total_tokens
            entry['cost'] += record.total_cost

    return {
        'days': days,
        'stats': stats,
        'daily_usage': sorted(daily.values(), key=lambda d: d['date']),
        'feature_usage': sorted(by_feature.values(), key=lambda f: f['cost'], reverse=True),
        'model_usage': sorted(by_model.values(), key=lambda m: m['cost'], reverse=True),
        'recent_usage': [r.to_dict() for r in records[:20]],
    }
