from typing import ClassVar
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

from lxml import etree
from lxml.etree import _Element

from smsremind.lib.namespace import nsmap
from smsremind.lib.text import as_text


class BaseElement:
    """
    An element of a request body.  Subclasses give the ``tag``;
    children are added with ``+``, taking one element or a list:

        dav.Propfind() + (dav.Prop() + [dav.DisplayName(), dav.ResourceType()])
    """

    tag: ClassVar[Optional[str]] = None

    def __init__(
        self, name: Optional[str] = None, value: Union[str, bytes, None] = None
    ) -> None:
        self.children: List["BaseElement"] = []
        self.attributes: Dict[str, str] = {}
        self.value = as_text(value)
        if name is not None:
            self.attributes["name"] = name

    def __add__(
        self, other: Union["BaseElement", Iterable["BaseElement"]]
    ) -> "BaseElement":
        if isinstance(other, BaseElement):
            self.children.append(other)
        else:
            self.children.extend(other)
        return self

    def __str__(self) -> str:
        return etree.tostring(
            self.xmlelement(), encoding="utf-8", xml_declaration=True, pretty_print=True
        ).decode("utf-8")

    def xmlelement(self) -> _Element:
        if self.tag is None:
            raise ValueError(f"{type(self).__name__} has no tag")
        root = etree.Element(self.tag, attrib=self.attributes, nsmap=nsmap)
        root.text = self.value
        root.extend([child.xmlelement() for child in self.children])
        return root


class NamedElement(BaseElement):
    """An element that needs a name attribute, like comp-filter"""

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError(f"{type(self).__name__} needs a name")
        super().__init__(name=name)
