"""Controlled terminology read from the NCI EVS site.

NCI publishes every CDISC CT package as an ODM XML file under
``https://evs.nci.nih.gov/ftp1/CDISC/<Standard>/Archive/``. When a client is
created with ``use_nci_site_for_ct=True`` terminology products are built from
these files instead of the CDISC Library API:

        * :func:`parse_directory_listing` turns an archive folder HTML page into
          Partial terminology products (one per ``*.odm.xml`` file);
        * :func:`parse_odm_package` fills such a product with its code lists.

The ODM files use the ``nciodm`` extension namespace for most attributes and
elements, so lookups below work on local names and ignore namespaces.

Example:
        library = CdiscLibrary(api_key=key, use_nci_site_for_ct=True)
        await library.get_ct_from_nci_site(["/SDTM/Archive/"])
        ct = await library.get_product("sdtmct-2019-12-20")
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from .models import CodeList, LoadState, Product, Term

logger = logging.getLogger(__name__)

DEFAULT_NCI_PATHS = (
    "/SDTM/Archive/",
    "/ADaM/Archive/",
    "/Define-XML/Archive/",
    "/SEND/Archive/",
    "/Protocol/Archive/",
    "/Glossary/Archive/",
)

_ODM_LINK_RE = re.compile(
    r"<a\s*href=\".*?\">\s*(.*?)\s*Terminology\s*(\d{4}-\d{2}-\d{2})\.odm\.xml\s*</a>"
)
_FOLDER_RE = re.compile(r"^/?([^/]+)/")


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    if ":" in tag:
        return tag.split(":", 1)[1]
    return tag


def _attribute(element: ET.Element, name: str) -> Optional[str]:
    for key, value in element.attrib.items():
        if _local_name(key) == name:
            return value
    return None


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _text(element: Optional[ET.Element], name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _texts(element: ET.Element, name: str) -> Optional[List[str]]:
    values = [
        child.text.strip() for child in _children(element, name) if child.text is not None
    ]
    return values or None


def _definition(element: ET.Element) -> Optional[str]:
    description = _child(element, "Description")
    return _text(description, "TranslatedText")


def parse_code_list_element(element: ET.Element) -> CodeList:
    """Build a Full code list from an ODM ``CodeList`` element."""
    code_list = CodeList(
        concept_id=_attribute(element, "ExtCodeID"),
        name=_attribute(element, "Name"),
        extensible=_attribute(element, "CodeListExtensible") == "Yes",
        submission_value=_text(element, "CDISCSubmissionValue"),
        definition=_definition(element),
        preferred_term=_text(element, "PreferredTerm"),
        synonyms=_texts(element, "CDISCSynonym"),
    )
    code_list.terms = [
        Term(
            concept_id=_attribute(item, "ExtCodeID"),
            submission_value=_attribute(item, "CodedValue"),
            definition=_text(item, "CDISCDefinition"),
            preferred_term=_text(item, "PreferredTerm"),
            synonyms=_texts(item, "CDISCSynonym"),
        )
        for item in _children(element, "EnumeratedItem")
    ]
    code_list.advance(LoadState.FULL)
    return code_list


def parse_odm_package(product: Product, xml_text: Any) -> bool:
    """Fill a terminology product from an NCI ODM document.

    Returns:
        bool: False when the document is not parseable ODM.
    """
    if not isinstance(xml_text, (str, bytes)) or not xml_text:
        logger.warning(f"Unexpected NCI response for {product.id}")
        return False
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning(f"Could not parse NCI ODM file for {product.id}: {e}")
        return False

    study = _child(root, "Study")
    metadata = _child(study, "MetaDataVersion")
    if metadata is None:
        logger.warning(f"NCI ODM file for {product.id} has no MetaDataVersion")
        return False

    version = _attribute(root, "SourceSystemVersion")
    product.description = _text(_child(study, "GlobalVariables"), "StudyDescription")
    product.source = _attribute(root, "Originator")
    product.effective_date = version
    product.registration_status = "Final"
    if version is not None:
        product.version = version
    product.name = f"{product.model} CT {product.version}"

    code_lists: Dict[str, CodeList] = {}
    for element in _children(metadata, "CodeList"):
        code_list = parse_code_list_element(element)
        code_list.connection = product.connection
        code_list.href = f"{product.href}/codelists/{code_list.concept_id}"
        code_lists[code_list.concept_id] = code_list
    product.codelists = code_lists
    product.advance(LoadState.FULL)
    logger.debug(f"Parsed {len(code_lists)} code lists for {product.id} from NCI site")
    return True


def parse_directory_listing(html: Any, path: str, connection: Any = None) -> Dict[str, Product]:
    """Terminology products listed on an NCI archive folder page.

    Args:
        html: Folder page content.
        path: Folder path relative to the NCI CDISC root (``/SDTM/Archive/``),
            its first segment becomes the product model.
        connection: Connection given to the created products.

    Example:
        >>> page = '<a href="x">SDTM Terminology 2019-12-20.odm.xml</a>'
        >>> list(parse_directory_listing(page, "/SDTM/Archive/"))
        ['sdtmct-2019-12-20']
    """
    if not isinstance(html, str):
        return {}
    folder = _FOLDER_RE.match(path)
    model = folder.group(1) if folder is not None else None
    products: Dict[str, Product] = {}
    for match in _ODM_LINK_RE.finditer(html):
        name, version = match.groups()
        id_name = "glossary" if name == "CDISC Glossary" else name.lower()
        product_id = f"{id_name}ct-{version}"
        products[product_id] = Product(
            href=f"/mdr/ct/packages/{product_id}",
            connection=connection,
            id=product_id,
            label=f"{name} Controlled Terminology Effective {version}",
            type="Terminology",
            version=version,
            model=model,
        )
    return products
