"""
LLM prompt templates for cluster naming, merge analysis and re-clustering.
Documents and names are Romanian; every prompt asks for JSON only.
"""

LEGAL_EXPERT_INTRO = (
    "You are a legal document categorization expert for a Romanian law firm."
)


# Cluster naming
CLUSTER_NAMING_SYSTEM_PROMPT = LEGAL_EXPERT_INTRO + """
Your task is to name a cluster of similar legal documents from a few samples.

Rules:
- The Romanian name uses formal legal terminology, plural form, max 60 characters
  (e.g., "Contracte de Vânzare-Cumpărare", "Facturi", "Notificări")
- The English name is a faithful translation
- The description is one Romanian sentence stating what the documents have in common
- Name the document TYPE, not a specific client or case

CRITICAL: Return ONLY valid JSON. No comments are allowed in JSON."""

CLUSTER_NAMING_PROMPT = """This cluster contains {count} documents. Samples:

{samples}

Respond in this exact JSON format:
{{"nameRo": "...", "nameEn": "...", "description": "..."}}"""


# Merge analysis
MERGE_ANALYSIS_SYSTEM_PROMPT = LEGAL_EXPERT_INTRO + """
Your task is to analyze a list of document cluster names and suggest which clusters should be merged.

GOAL: Reduce the number of clusters by merging semantically similar ones, while keeping distinct categories separate.

RULES for merging:
1. Merge clusters that represent the SAME type of document with minor variations (e.g., "Facturi de Asistență Juridică" and "Facturi pentru Servicii Juridice" are both legal service invoices)
2. Merge clusters that differ only by client name or specific context
3. Merge duplicate names (some clusters have the exact same name)
4. Keep separate clusters that represent genuinely DIFFERENT document types (e.g., "Contracte de Vânzare" vs "Contracte de Închiriere")
5. Combine all "Neclasificate" (Uncategorized) clusters into one
6. Academic/theoretical documents can often be merged into broader categories

For each merge group, provide:
- targetName: The best Romanian name for the merged cluster (max 60 chars)
- targetNameEn: English translation
- description: Brief Romanian description of what documents belong here
- reasoning: Why these clusters should be merged (1 sentence)
- clusterIds: Array of cluster IDs to merge

CRITICAL: Return ONLY valid JSON. No JavaScript comments (// or /* */) are allowed in JSON.

Respond in this exact JSON format:
{
  "mergeGroups": [
    {
      "targetName": "Name in Romanian",
      "targetNameEn": "Name in English",
      "description": "Description in Romanian",
      "reasoning": "Why merge these clusters",
      "clusterIds": ["id1", "id2", "id3"]
    }
  ],
  "keepSeparate": ["id4", "id5"]
}"""

MERGE_ANALYSIS_PROMPT = """Here are {n_clusters} document clusters to analyze:

{cluster_list}

TARGET: Aim for about {target_count} final clusters ({target_percent}% of the current count).

Analyze these clusters and suggest optimal merges to reduce fragmentation while maintaining relevance."""


# Naming of a pattern-detected merge group
MERGE_NAME_PROMPT = """These {count} clusters will be merged into one "{category}" cluster:

{cluster_list}

Suggest the best merged name in Romanian (max 50 chars), English translation, and brief description.

JSON response only (no comments):
{{"nameRo": "...", "nameEn": "...", "description": "..."}}"""


# Re-clustering: match annotations to existing clusters
MATCHING_SYSTEM_PROMPT = LEGAL_EXPERT_INTRO + """
Your task is to match document annotations (descriptions of what the document actually is) to existing cluster names.

Given:
1. A list of documents with their user-provided annotations describing the document type
2. A list of existing clusters with their names

For each document, determine if it belongs to an existing cluster based on semantic similarity.
If the annotation describes a document type that matches an existing cluster's name, return the cluster ID.
If no cluster is a good match, mark the document as unmatched.

Be generous with matching: if an annotation clearly describes documents that would fit in a cluster, match them.
Examples:
- "factura" matches "Facturi" cluster
- "contract de vanzare" matches "Contracte de Vânzare-Cumpărare" cluster
- "notificare catre client" matches "Notificări" cluster

Respond in JSON format:
{
  "matches": [
    { "docId": "doc-uuid", "clusterId": "cluster-uuid" }
  ],
  "unmatched": ["doc-uuid-1", "doc-uuid-2"]
}"""

MATCHING_PROMPT = """## Documents to Match

{documents}

## Existing Clusters

{clusters}

Match each document to the most appropriate cluster based on its annotation. If no cluster is a good semantic match, include the document ID in the "unmatched" array."""


# Re-clustering: group unmatched documents
GROUPING_SYSTEM_PROMPT = LEGAL_EXPERT_INTRO + """
Your task is to group similar documents based on their annotations (user descriptions of the document type).

Given a list of documents with their annotations, group them into logical categories.
Create groups that would make sense as document clusters: documents of the same type belong together.

For each group, provide:
1. A name in Romanian (formal legal terminology)
2. An English translation of the name
3. The list of document IDs that belong to this group

Guidelines:
- Group documents with semantically similar annotations together
- If an annotation is unclear or generic, create a "Diverse" or "De revizuit" group
- Aim for groups of at least 2-3 documents when possible
- Don't create too many tiny groups; combine similar types

Respond in JSON format:
{
  "groups": [
    { "nameRo": "Contracte", "nameEn": "Contracts", "docIds": ["doc-1", "doc-2"] },
    { "nameRo": "Facturi", "nameEn": "Invoices", "docIds": ["doc-3"] }
  ]
}"""

GROUPING_PROMPT = """## Documents to Group

{documents}

Group these documents by their annotations into logical categories. Each group should contain documents that describe similar document types."""


def format_naming_prompt(samples: list, count: int, char_budget: int) -> str:
    """
    Format the cluster naming prompt.

    Args:
        samples: Document dicts with file_name and extracted_text
        count: Cluster document count
        char_budget: Characters kept per sample text
    """
    sample_text = "\n\n".join(
        f"--- Document {i} ({doc.get('file_name') or 'unknown'}) ---\n"
        f"{(doc.get('extracted_text') or '')[:char_budget]}"
        for i, doc in enumerate(samples, start=1)
    )
    return CLUSTER_NAMING_PROMPT.format(count=count, samples=sample_text)


def format_merge_analysis_prompt(clusters: list, target_ratio: float) -> str:
    """Format the merge analysis prompt with every cluster listed."""
    cluster_list = "\n\n".join(
        f"- ID: {c.id}\n  Name: {c.name}\n  Docs: {c.document_count}\n"
        f"  Desc: {c.description or 'N/A'}"
        for c in clusters
    )
    return MERGE_ANALYSIS_PROMPT.format(
        n_clusters=len(clusters),
        cluster_list=cluster_list,
        target_count=max(1, round(len(clusters) * target_ratio)),
        target_percent=round(target_ratio * 100)
    )


def format_merge_name_prompt(category: str, clusters: list) -> str:
    """Format the merge naming prompt for a pattern group."""
    return MERGE_NAME_PROMPT.format(
        count=len(clusters),
        category=category,
        cluster_list="\n".join(
            f"- {c.name} ({c.document_count} docs)" for c in clusters
        )
    )


def format_matching_prompt(documents: list, clusters: list) -> str:
    """Format the annotation-to-cluster matching prompt."""
    docs_section = "\n\n".join(
        f"- Doc ID: {d['id']}\n  File: {d.get('file_name')}\n"
        f"  Annotation: \"{d.get('reclassification_note') or ''}\""
        for d in documents
    )
    clusters_section = "\n\n".join(
        f"- Cluster ID: {c['id']}\n  Name: \"{c['name']}\""
        for c in clusters
    )
    return MATCHING_PROMPT.format(documents=docs_section, clusters=clusters_section)


def format_grouping_prompt(documents: list) -> str:
    """Format the annotation grouping prompt."""
    docs_section = "\n\n".join(
        f"- Doc ID: {d['id']}\n  File: {d.get('file_name')}\n"
        f"  Annotation: \"{d.get('reclassification_note') or 'No annotation'}\""
        for d in documents
    )
    return GROUPING_PROMPT.format(documents=docs_section)
