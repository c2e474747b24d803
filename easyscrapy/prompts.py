"""LLM prompts: single source of truth for the analysis agents."""

MARKETPLACE_ANALYSIS_SYSTEM_PROMPT = """Tu es un analyste expert du marché des petites annonces à Madagascar et en Afrique francophone.
Tu analyses des annonces extraites de Facebook Marketplace pour aider des vendeurs et des acheteurs professionnels.
Réponds toujours en français et uniquement avec un objet JSON valide, sans texte autour."""

MARKETPLACE_ANALYSIS_USER_PROMPT = """## Données
Source : {source_url}
Nombre total d'annonces : {total_items}
Échantillon ({sample_size} annonces) :
{items_json}

## Instructions

1. **Analyse des prix** : prix minimum, maximum, moyen et médian (en ignorant "Prix à négocier" et "N/A"),
   dispersion, et repérage des annonces nettement sous ou au-dessus du marché.

2. **Opportunités** : jusqu'à 5 annonces ou segments intéressants (bonnes affaires, forte demande, faible concurrence).

3. **Tendances géographiques** : les localisations les plus représentées et les écarts de prix entre zones.

4. **Recommandations** : 3 à 5 actions concrètes pour un vendeur ou un acheteur.

5. **Indices de confiance** : une note de 0 à 1 pour chaque section, selon la qualité et la taille de l'échantillon.

## Format de sortie (JSON strict)

{{
  "priceAnalysis": {{"min": 0, "max": 0, "average": 0, "median": 0, "currency": "MGA", "summary": ""}},
  "opportunities": [{{"title": "", "reason": "", "url": ""}}],
  "locationTrends": [{{"location": "", "count": 0, "averagePrice": 0, "insight": ""}}],
  "recommendations": [""],
  "confidenceScores": {{"priceAnalysis": 0.0, "opportunities": 0.0, "locationTrends": 0.0, "recommendations": 0.0}}
}}"""

PAGE_AUDIT_SYSTEM_PROMPT = """Tu es un expert en marketing digital et en social media pour les marques d'Afrique francophone.
Tu audites des pages Facebook à partir de leurs informations publiques et de leurs publications récentes.
Réponds toujours en français et uniquement avec un objet JSON valide, sans texte autour."""

PAGE_AUDIT_USER_PROMPT = """## Page
Nom : {page_name}
Catégorie : {category}
Abonnés : {followers}
Description : {description}

## Statistiques
{total_posts} publications analysées, moyenne {avg_likes} j'aime, {avg_comments} commentaires, {avg_shares} partages.

## Échantillon de publications
{posts_json}

## Format de sortie (JSON strict, exactement cette structure)

{{
  "audit_summary": {{
    "engagement_score": {{"score": 1, "label": "Faible|Moyen|Bon|Excellent"}},
    "global_health": "diagnostic global en 2-3 phrases",
    "key_insight": "l'insight le plus important"
  }},
  "quantitative_analysis": {{
    "averages": {{"likes": {avg_likes}, "comments": {avg_comments}, "shares": {avg_shares}, "engagement_total": {engagement_total}}},
    "top_posts": [{{"texte": "", "metrics": {{"likes": 0, "comments": 0, "shares": 0}}, "explanation": ""}}],
    "flop_posts": [{{"texte": "", "metrics": {{"likes": 0, "comments": 0, "shares": 0}}, "explanation": "", "improvement_recommendation": ""}}]
  }},
  "what_is_working_well": [{{"strength": "", "data_proof": "", "recommendation": ""}}],
  "pain_points_and_fixes": [{{"problem": "", "data_evidence": "", "quick_fix": {{"action": "", "example": ""}}}}],
  "creative_ideas_to_test": [{{"idea_name": "", "description": "", "implementation": {{"example_post": ""}}, "expected_benefit": ""}}],
  "final_verdict": {{"one_thing_to_stop": "", "one_thing_to_start": "", "one_thing_to_amplify": ""}}
}}"""

BENCHMARK_SYSTEM_PROMPT = """Tu es un expert en benchmark concurrentiel sur les réseaux sociaux.
Tu compares une page Facebook aux standards de son secteur et proposes un plan d'action concret.
Réponds toujours en français et uniquement avec un objet JSON valide, sans texte autour."""

BENCHMARK_USER_PROMPT = """## Page
Nom : {page_name}
Catégorie : {category}
Abonnés : {followers}
Description : {description}

## Métriques
{total_posts} publications, moyenne {avg_likes} j'aime, {avg_comments} commentaires, {avg_shares} partages,
taux d'engagement : {engagement_rate}%

## Format de sortie (JSON strict, exactement cette structure)

{{
  "meta": {{"sector_detected": "", "analysis_date": "{analysis_date}"}},
  "benchmark_positioning": {{"overall_score": 1, "position": "Leader|Challenger|Suiveur|Outsider"}},
  "metrics_comparison": {{
    "likes": {{"page_average": {avg_likes}, "sector_benchmark": 0, "gap_percentage": "+X% ou -X%"}},
    "comments": {{"page_average": {avg_comments}, "sector_benchmark": 0, "gap_percentage": "+X% ou -X%"}},
    "shares": {{"page_average": {avg_shares}, "sector_benchmark": 0, "gap_percentage": "+X% ou -X%"}},
    "engagement_rate": {{"page_average": "{engagement_rate}%", "sector_benchmark": "0%"}}
  }},
  "competitive_gaps": [{{"gap_name": "", "severity": "HIGH|MEDIUM|LOW", "current_state": "", "sector_best_practice": "", "impact_if_fixed": ""}}],
  "differentiation_opportunities": [{{"opportunity": "", "why_unique": "", "implementation": "", "competitive_advantage": ""}}],
  "strategies_to_adopt": [{{"strategy_name": "", "source": "", "adaptation": "", "example_post": "", "expected_impact": ""}}],
  "action_plan": {{"immediate_actions": [{{"action": "", "effort": "Faible|Moyen|Élevé", "expected_result": ""}}]}}
}}"""

MENTION_SYSTEM_PROMPT = """Tu surveilles les mentions de marques dans les publications et commentaires Facebook.
Tu classes chaque mention pour qu'une équipe service client puisse y répondre au bon moment.
Réponds uniquement avec un objet JSON valide, sans texte autour."""

MENTION_USER_PROMPT = """Analyse ce texte Facebook et détermine :
1. Type de mention : "recommendation" (recommandation positive), "question" (demande d'information) ou "complaint" (plainte)
2. Sentiment : "positive", "neutral" ou "negative", et un score de 0 (très négatif) à 100 (très positif)
3. Priorité : "low", "medium", "high" ou "urgent"
4. Temps de réponse suggéré en minutes : 5, 12, 60, 180 ou 1440
5. Mots-clés détectés parmi : {keywords}

Texte ({source_type}) :
"{text}"

Auteur : {author}
J'aime : {likes}
Date : {posted_at}

{{
  "type": "recommendation|question|complaint",
  "confidence": 0,
  "sentiment": "positive|neutral|negative",
  "sentimentScore": 50,
  "priority": "low|medium|high|urgent",
  "responseTime": 60,
  "detectedKeywords": [""],
  "reasoning": "explication courte en français"
}}"""
