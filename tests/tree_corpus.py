"""
tests/tree_corpus.py
====================
Shared NEWICK corpus for the decomposition and backend-agreement suites.

FIXED_TREES covers the hand-built shapes (balanced, caterpillar, star,
multifurcating, unary chains).  random_newick() builds further trees from a
seeded ``random.Random`` so every run sees the same corpus.
"""

import random

FIXED_TREES = [
    # 0: balanced binary, 8 taxa
    "(((A,B),(C,D)),((E,F),(G,H)));",
    # 1: caterpillar, 5 taxa
    "(A,(B,(C,(D,E))));",
    # 2: caterpillar, 10 taxa, ladderized the other way
    "((((((((((t0,t1),t2),t3),t4),t5),t6),t7),t8),t9));",
    # 3: star, 5 taxa
    "(A,B,C,D,E);",
    # 4: nested multifurcations
    "((A,B,C),(D,(E,F)),G);",
    # 5: asymmetric, 4 taxa
    "((A,(B,C)),D);",
    # 6: unary chain above a cherry
    "(((A,B)),C,D);",
    # 7: two taxa
    "(A,B);",
    # 8: wide star under a binary root
    "((a,b,c,d,e,f,g),(h,i));",
    # 9: 12 taxa, mixed arity
    "(((a,b),(c,d,e)),((f,(g,h)),(i,j,(k,l))));",
]


def random_newick(seed: int, n_leaves: int, max_arity: int = 3) -> str:
    """
    Return a random rooted tree over taxa ``x0 .. x{n_leaves-1}``.

    Each internal node splits its taxa into 2 to *max_arity* non-empty
    groups, so multifurcations occur whenever *max_arity* > 2.
    """
    rng = random.Random(seed)
    names = [f"x{i}" for i in range(n_leaves)]
    rng.shuffle(names)

    def build(taxa):
        if len(taxa) == 1:
            return taxa[0]
        arity = rng.randint(2, min(max_arity, len(taxa)))
        cuts = sorted(rng.sample(range(1, len(taxa)), arity - 1))
        bounds = [0] + cuts + [len(taxa)]
        parts = [build(taxa[lo:hi]) for lo, hi in zip(bounds, bounds[1:])]
        return "(" + ",".join(parts) + ")"

    return build(names) + ";"


RANDOM_TREES = [random_newick(seed, n) for seed, n in enumerate(
    [3, 6, 9, 13, 17, 24, 31, 40, 57, 64]
)]

ALL_TREES = FIXED_TREES + RANDOM_TREES
