# Services package init
"""
Annotation Core - Services Layer
=================================

What:  The validation pipeline and the provider orchestration logic.
How:   Services accept pydantic models, apply the heuristics or the fallback
       state machine, and return new models. None of them know about HTTP.

Service Inventory:
    - CoordinateValidator:        range + suspicious-placeholder check
    - EvidenceClassifier:         phrase-tier visual evidence signal
    - ContentSpecificityAnalyzer: specific vs. generic vocabulary ratio
    - ResearchDetector:           citation / research-language scoring
    - ConfidenceCombiner:         research boost and final validity
    - FilterEngine:               batch partition + over-filtering protection
    - ProcessingOrchestrator:     runs all of the above for one batch
    - ProviderClient (abstract):  one AI vendor adapter
    - ProviderOrchestrator:       model walk, vendor fallback, circuit breaker

Tunable vocabularies live in phrase_tables.py; tunable thresholds in config.py.
"""
