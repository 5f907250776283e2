"""Word lists shared by the feature groups and detectors."""

ACADEMIC_WORDS = frozenset([
    'analysis', 'approach', 'area', 'assessment', 'assume', 'authority', 'available',
    'benefit', 'concept', 'consistent', 'context', 'contract', 'create', 'data',
    'definition', 'derived', 'distribution', 'economic', 'environment', 'established',
    'estimate', 'evidence', 'factors', 'function', 'indicate', 'individual',
    'interpretation', 'method', 'process', 'research', 'significant', 'theory',
    'achieve', 'acquisition', 'administration', 'affect', 'appropriate', 'aspects',
    'assistance', 'categories', 'chapter', 'commission', 'community', 'complex',
    'conclusion', 'conduct', 'consequences', 'construction', 'consumer', 'credit',
    'cultural', 'design', 'distinction', 'elements', 'equation', 'evaluation',
    'framework', 'hypothesis', 'implementation', 'implications', 'investigation',
])

TRANSITION_WORDS = frozenset([
    'however', 'therefore', 'moreover', 'furthermore', 'consequently', 'nevertheless',
    'nonetheless', 'accordingly', 'similarly', 'likewise', 'conversely', 'meanwhile',
    'instead', 'subsequently', 'ultimately', 'additionally', 'besides', 'thus',
    'hence', 'indeed', 'specifically', 'particularly', 'especially', 'namely',
])

STOP_WORDS = frozenset([
    'a', 'an', 'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'from', 'up', 'about', 'into', 'through', 'during', 'before',
    'after', 'above', 'below', 'between', 'among', 'is', 'are', 'was', 'were',
    'be', 'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will',
    'would', 'could', 'should', 'may', 'might', 'must', 'can',
])

ARGUMENT_MARKERS = (
    'because', 'therefore', 'thus', 'consequently', 'as a result',
    'evidence', 'research', 'study', 'data', 'analysis',
    'argue', 'claim', 'suggest', 'propose', 'demonstrate',
)

INFORMAL_WORDS = ('gonna', 'wanna', 'gotta', 'kinda', 'sorta', "ain't")

# Misspellings cheap enough to count inside the feature vector; the spelling
# analyzer carries the full dictionary.
FEATURE_MISSPELLINGS = ('alot', 'recieve', 'seperate', 'definately', 'occured')
