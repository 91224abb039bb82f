"""
Campaign Payload Service

Turns an edited campaign draft into the body the campaign service accepts:
the sequence is normalised through a load/save cycle and checked against the
prospect data its placeholders will be filled from.
"""

import logging
from typing import List, Optional

from schemas.campaign import CampaignDraft, CampaignPayload, PreparedCampaign, Prospect
from schemas.sequence import SequenceWarning, WarningCode
from services.sequence_serializer import from_flat, to_flat_dicts

logger = logging.getLogger(__name__)


def prospect_value(prospect: Prospect, key: str) -> Optional[str]:
    """Value a prospect supplies for an allowed variable key."""
    if key == "first_name":
        parts = prospect.name.split()
        return parts[0] if parts else None
    value = getattr(prospect, key, None)
    return str(value) if value else None


def prepare_campaign(draft: CampaignDraft) -> PreparedCampaign:
    result = from_flat(draft.sequence)
    warnings: List[SequenceWarning] = list(result.warnings)

    used_keys = set()
    for node in result.graph.nodes:
        used_keys.update(node.content.variables)

    for key in sorted(used_keys):
        missing = [p.email for p in draft.prospects if prospect_value(p, key) is None]
        if missing:
            message = f"{len(missing)} prospect(s) have no value for {{{{{key}}}}}"
            logger.warning(message)
            warnings.append(SequenceWarning(code=WarningCode.MISSING_PROSPECT_FIELD, message=message))

    payload = CampaignPayload(
        name=draft.name,
        description=draft.description,
        prospects=draft.prospects,
        sequence=to_flat_dicts(result.graph),
    )
    return PreparedCampaign(payload=payload, warnings=warnings)
