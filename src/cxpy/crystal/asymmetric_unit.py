import logging
from collections import defaultdict
import numpy as np
from cxpy.core.element import Element, chemical_formula

LOG = logging.getLogger(__name__)


class AsymmetricUnit:
    """
    Storage class for the coordinates and labels in a crystal
    asymmetric unit

    Attributes:
        elements (List[Element]): N length list of elements associated with
            the sites in this asymmetric unit
        atomic_numbers (np.ndarray): N length array of atomic numbers
        positions (np.ndarray): (N, 3) array of site positions in fractional coordinates
        labels (np.ndarray): N length array of string labels for each site
        adps (np.ndarray): (N, 6) anisotropic displacement parameters
            (U11, U22, U33, U12, U13, U23), or None if not provided
    """

    def __init__(self, elements, positions, labels=None, adps=None, **kwargs):
        """
        Create an asymmetric unit object from a list of Elements and
        an array of fractional coordinates.

        Arguments:
            elements (List[Element]): N length list of elements (or symbols,
                or atomic numbers) associated with the sites
            positions (array_like): (N, 3) array of site positions in fractional coordinates
            labels (array_like, optional): N length array of string labels for each site
            adps (array_like, optional): (N, 6) array of displacement parameters
            **kwargs: Additional properties (will populate the properties member)
                to store in this asymmetric unit
        """
        self.elements = [x if isinstance(x, Element) else Element[x] for x in elements]
        self.atomic_numbers = np.asarray(
            [x.atomic_number for x in self.elements], dtype=int
        )
        self.positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if len(self.positions) != len(self.elements):
            raise ValueError(
                f"Got {len(self.elements)} elements but {len(self.positions)} positions"
            )
        self.properties = dict(kwargs)
        if labels is None:
            labels = []
            label_index = defaultdict(int)
            for el in self.elements:
                label_index[el] += 1
                labels.append("{}{}".format(el, label_index[el]))
        self.labels = np.array(labels, dtype=object)
        if adps is not None:
            adps = np.asarray(adps, dtype=np.float64).reshape(-1, 6)
            if len(adps) != len(self.elements):
                raise ValueError("Need one set of displacement parameters per site")
        self.adps = adps

    @property
    def formula(self):
        """Molecular formula for this asymmetric unit"""
        return chemical_formula(self.elements, subscript=False)

    def __len__(self):
        return len(self.elements)

    def __repr__(self):
        return "<{}>".format(self.formula)

    def to_dict(self):
        d = {
            "elements": [x.symbol for x in self.elements],
            "positions": self.positions.tolist(),
            "labels": [str(x) for x in self.labels],
        }
        if self.adps is not None:
            d["adps"] = self.adps.tolist()
        return d

    @classmethod
    def from_dict(cls, d):
        return cls(
            d["elements"], d["positions"], labels=d.get("labels"), adps=d.get("adps")
        )

    @classmethod
    def from_records(cls, records):
        """Initialize an AsymmetricUnit from a list of dictionary like objects

        Arguments:
            records (iterable): An iterable containing dict_like objects with `label`,
                `element`, `position` and optionally `adp` stored.
        """
        labels, elements, positions, adps = [], [], [], []
        for r in records:
            labels.append(r["label"])
            elements.append(Element[r["element"]])
            positions.append(r["position"])
            adps.append(r.get("adp"))
        if any(x is None for x in adps):
            adps = None
        return cls(elements, positions, labels=labels, adps=adps)
