"""Dublin Core resource: a Source subtype with typed DC accessors."""

from __future__ import annotations

from rdflib.namespace import DC

from talia_core.source import MultiProperty, SingularProperty, Source


class DcResource(Source):
    """A Source described with Dublin Core elements."""

    additional_rdf_types = (str(DC) + "Resource",)

    identifier = SingularProperty(DC.identifier)
    title = SingularProperty(DC.title)
    date = SingularProperty(DC.date)
    description = SingularProperty(DC.description)
    language = SingularProperty(DC.language)
    rights = SingularProperty(DC.rights)
    creators = MultiProperty(DC.creator)
    publishers = MultiProperty(DC.publisher)
    dc_subjects = MultiProperty(DC.subject)
