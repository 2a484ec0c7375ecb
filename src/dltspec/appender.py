from __future__ import annotations

import logging

from .errors import AnchorNotFoundError
from .models import ResolvedDocument, ResolvedSection

logger = logging.getLogger(__name__)

_MAX_LEVEL = 6


def _subtree_end(sections: tuple[ResolvedSection, ...], index: int) -> int:
    level = sections[index].level
    end = index + 1
    while end < len(sections) and sections[end].level > level:
        end += 1
    return end


def _rebase(sections: tuple[ResolvedSection, ...], parent_level: int) -> tuple[ResolvedSection, ...]:
    if not sections:
        return sections
    shift = parent_level + 1 - min(section.level for section in sections)
    return tuple(
        section.model_copy(update={"level": max(1, min(_MAX_LEVEL, section.level + shift))})
        for section in sections
    )


def append(
    host: ResolvedDocument,
    appendix: ResolvedDocument,
    anchor_name: str | None = None,
) -> ResolvedDocument:
    """Merge ``appendix`` sections into ``host`` right after the anchor's subtree.

    The appendix lands before the next section at the anchor's level or
    shallower, one level below the anchor. Appending the same appendix twice
    yields two copies.
    """
    anchor = anchor_name or appendix.target_anchor
    if not anchor:
        raise AnchorNotFoundError("<none>", host.anchors())
    index = host.anchor_index(anchor)
    if index is None:
        raise AnchorNotFoundError(anchor, host.anchors())

    if appendix.preamble.strip():
        logger.warning(
            "Dropping preamble text of appendix '%s'; only sections are merged",
            appendix.template_id,
        )

    end = _subtree_end(host.sections, index)
    inserted = _rebase(appendix.sections, host.sections[index].level)
    logger.debug(
        "Merging %s section(s) from '%s' at anchor '%s' (position %s)",
        len(inserted),
        appendix.template_id,
        anchor,
        end,
    )
    return host.model_copy(
        update={
            "sections": host.sections[:end] + inserted + host.sections[end:],
            "merged_appendices": host.merged_appendices + (appendix.template_id,),
        }
    )
