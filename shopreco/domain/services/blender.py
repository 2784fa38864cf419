import logging
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from shopreco.domain.models.reco import BLENDED, RecommendationScore, StrategyConfig
from shopreco.domain.services.constants import REASON_BLENDED
from shopreco.domain.services.strategy import rank

logger = logging.getLogger(__name__)

StrategyOutput = Tuple[StrategyConfig, Sequence[RecommendationScore]]


def blend(outputs: Sequence[StrategyOutput], limit: int, normalize: bool = False) -> List[RecommendationScore]:
    """
    Merge per-strategy scores into one ranked list.

    Each score is multiplied by its strategy's weight, contributions to the same
    product are summed, and the result is sorted (score desc, product id asc) and
    cut to `limit`. Strategies with zero weight contribute no products at all.
    With `normalize`, sums are divided by the total weight of the strategies
    passed in. Never raises: on any error the blend is empty.
    """
    try:
        return _blend(outputs, limit, normalize)
    except Exception:
        logger.exception("blend failed strategies=%s", [cfg.name.value for cfg, _ in outputs])
        return []


def _blend(outputs: Sequence[StrategyOutput], limit: int, normalize: bool) -> List[RecommendationScore]:
    contributions: Dict[str, List[Tuple[float, RecommendationScore]]] = defaultdict(list)
    for cfg, scores in outputs:
        # a zero weight switches the strategy off
        if cfg.weight <= 0:
            continue
        for s in scores:
            contributions[s.product_id].append((s.score * cfg.weight, s))

    total_weight = sum(cfg.weight for cfg, _ in outputs)
    divisor = total_weight if normalize and total_weight > 0 else 1.0

    merged: List[RecommendationScore] = []
    for pid, parts in contributions.items():
        score = sum(weighted for weighted, _ in parts) / divisor
        if len(parts) == 1:
            only = parts[0][1]
            merged.append(only.model_copy(update={"score": score}))
            continue
        merged.append(
            RecommendationScore(
                product_id=pid,
                score=score,
                reason=REASON_BLENDED.format(n=len(parts)),
                strategy=BLENDED,
                confidence=sum(s.confidence for _, s in parts) / len(parts),
            )
        )

    result = rank(merged)[:limit]
    logger.debug(
        "blend strategies=%s products=%s returned=%s normalize=%s",
        len(outputs), len(merged), len(result), normalize,
    )
    return result
