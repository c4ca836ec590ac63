"""Qt model for ranked probe results using model/view pattern."""

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from edgeprobe.models import CandidateResult
from edgeprobe.prober import CLASS_EXCELLENT


class RankedResultModel(QAbstractTableModel):
    """Read-only table model over a ranked list of CandidateResult."""

    COLUMNS = ["Rank", "Address", "Latency (ms)", "Loss", "Speed", "Rating"]

    def __init__(self, parent=None):
        super().__init__(parent)
        self._results: list[CandidateResult] = []

        self._rating_labels = {CLASS_EXCELLENT: "Excellent"}
        self._rating_default = "Fair"

    def rowCount(self, parent=QModelIndex()):
        """Return the number of ranked results."""
        if parent.isValid():
            return 0
        return len(self._results)

    def columnCount(self, parent=QModelIndex()):
        """Return the number of columns."""
        if parent.isValid():
            return 0
        return len(self.COLUMNS)

    def data(self, index, role=Qt.DisplayRole):
        """Return data for a given cell."""
        if not index.isValid():
            return None

        if index.row() >= len(self._results) or index.row() < 0:
            return None

        result = self._results[index.row()]
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:
                return str(index.row() + 1)
            elif col == 1:
                return result.address
            elif col == 2:
                return str(result.average_latency_ms)
            elif col == 3:
                return f"{result.loss_percent}%"
            elif col == 4:
                return result.throughput_label
            elif col == 5:
                return self._rating_labels.get(result.classification, self._rating_default)

        elif role == Qt.TextAlignmentRole:
            if col in (0, 2, 3, 4):
                return Qt.AlignRight | Qt.AlignVCenter
            return Qt.AlignLeft | Qt.AlignVCenter

        elif role == Qt.UserRole:
            return result

        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        """Return header data."""
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            if 0 <= section < len(self.COLUMNS):
                return self.COLUMNS[section]
        return None

    def flags(self, index):
        """Return item flags (read-only)."""
        if not index.isValid():
            return Qt.NoItemFlags
        return Qt.ItemIsEnabled | Qt.ItemIsSelectable

    def set_results(self, results: list[CandidateResult]):
        """Replace the table contents with a new ranked list."""
        self.beginResetModel()
        self._results = list(results)
        self.endResetModel()

    def clear(self):
        """Remove all rows."""
        if not self._results:
            return
        self.beginResetModel()
        self._results = []
        self.endResetModel()

    def result_at(self, row: int) -> CandidateResult | None:
        if 0 <= row < len(self._results):
            return self._results[row]
        return None

    def get_results(self) -> list[CandidateResult]:
        return list(self._results)
