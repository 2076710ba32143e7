from __future__ import annotations

from typing import Sequence

from daily_news_ranker.processing.types import Messages


def _messages(system: str, user: str) -> Messages:
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def _numbered(titles: Sequence[str]) -> str:
    return "\n".join(f"{i + 1}. {title}" for i, title in enumerate(titles))


def rank_titles(titles: Sequence[str], task_description: str) -> Messages:
    system = (
        "You are a fast, precise news editor. Decide which headlines in a group matter most "
        "to the target readers. Your answer must be extremely terse and follow the format exactly."
    )
    user = (
        f'**Goal**: "{task_description}"\n\n'
        f"**Headlines to rank**:\n{_numbered(titles)}\n\n"
        "**Instructions**:\n"
        "Order the headlines from most to least important for the goal. Reply ONLY with the "
        "headline numbers separated by commas. No reasons, no extra words.\n\n"
        f"**Format example**: {','.join(str(i + 1) for i in reversed(range(len(titles))))}\n\n"
        "**Your answer**:"
    )
    return _messages(system, user)


def find_similar_pairs(titles: Sequence[str]) -> Messages:
    listing = "\n".join(f'ID_{i}: "{title}"' for i, title in enumerate(titles))
    system = (
        "You are a high-precision text matcher. Find pairs of headlines that report exactly the "
        "same core event. Your answer must be terse and follow the format exactly."
    )
    user = (
        "**Task**: find pairs of highly similar headlines in the list below.\n\n"
        f"**Articles**:\n{listing}\n\n"
        "**Instructions**:\n"
        "1. Compare every headline with every other headline.\n"
        "2. If two headlines clearly describe the same news event (different outlet or wording), pair their IDs.\n"
        "3. Reply ONLY with a JSON array whose elements are two-number arrays of IDs.\n"
        "4. If there are no such pairs, reply with `[]`.\n\n"
        "Only report the pairs you are most certain about.\n\n"
        "**Format example**:\n[\n  [0, 5],\n  [2, 8]\n]\n"
    )
    return _messages(system, user)


def assign_to_representatives(rep_titles: Sequence[str], candidate_titles: Sequence[str]) -> Messages:
    reps = "\n".join(f'R_{i}: "{title}"' for i, title in enumerate(rep_titles))
    candidates = "\n".join(f'C_{i}: "{title}"' for i, title in enumerate(candidate_titles))
    system = (
        "You are a news classification engine. Decide whether each candidate article reports the "
        "same core event as one of the existing representative topics. Reply with a single JSON object."
    )
    user = (
        "**Task**: match every candidate article against the representative topics.\n\n"
        f"**Representative topics**:\n{reps or '(none)'}\n\n"
        f"**Candidate articles**:\n{candidates}\n\n"
        "**Instructions**:\n"
        '1. If a candidate covers the same event as a representative, map it to that ID (e.g. "R_0").\n'
        '2. If it is a new, independent topic, map it to "new".\n'
        "3. Reply ONLY with a JSON object: keys are candidate IDs, values are representative IDs or \"new\".\n\n"
        '**Format example**:\n{\n  "C_0": "R_1",\n  "C_1": "new"\n}\n'
    )
    return _messages(system, user)


def generate_cluster_theme(titles: Sequence[str]) -> Messages:
    listing = "\n".join(f'- "{title}"' for title in titles)
    system = (
        "You are a topic analyst who distills a group of similar headlines into the shortest "
        "accurate topic name. Your answer must be extremely terse."
    )
    user = (
        "**Task**: write a topic name of at most 15 words that summarizes the headlines below.\n\n"
        f"**Headlines**:\n{listing}\n\n"
        "Reply ONLY with the topic name, without quotes or explanations.\n\n"
        "**Your answer**:"
    )
    return _messages(system, user)


def verify_cluster_consistency(theme: str, titles: Sequence[str]) -> Messages:
    listing = "\n".join(f'{i + 1}. "{title}"' for i, title in enumerate(titles))
    system = (
        "You are a strict reviewer checking whether each headline matches a given core topic. "
        "Your answer must be extremely terse and follow the format exactly."
    )
    user = (
        f'**Core topic**: "{theme}"\n\n'
        f"**Headlines to check**:\n{listing}\n\n"
        "**Instructions**:\n"
        "Reply ONLY with the numbers of the headlines that do NOT report the same event as the core "
        'topic, separated by commas. If all headlines match, reply "none".\n\n'
        "**Format example 1**: 3,5\n"
        "**Format example 2**: none\n\n"
        "**Your answer**:"
    )
    return _messages(system, user)


def match_theme(theme: str, title: str) -> Messages:
    system = "You are a strict reviewer. Answer with a single word: yes or no."
    user = (
        f'**Core topic**: "{theme}"\n'
        f'**Headline**: "{title}"\n\n'
        'Does the headline report the same event as the core topic? Reply "yes" or "no".\n\n'
        "**Your answer**:"
    )
    return _messages(system, user)
