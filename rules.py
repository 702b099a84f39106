"""
Rules engine seam.

The coordinator never looks inside a game state. It only talks to an object
satisfying ``RulesEngine``; ``ChessRulesEngine`` is the default implementation
and delegates all board semantics to python-chess.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

import chess

from constants import BLACK, WHITE
from logging_config import get_logger

logger = get_logger(__name__)

PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


class IllegalMoveError(Exception):
    def __init__(self, from_square: str, to_square: str, promotion: Optional[str] = None):
        self.from_square = from_square
        self.to_square = to_square
        self.promotion = promotion
        super().__init__(f"Illegal move {from_square}->{to_square} (promotion={promotion})")


@dataclass
class MoveResult:
    state: Any
    san: str
    color: str


class RulesEngine(Protocol):
    def new_game(self) -> Any: ...

    def apply_move(self, state: Any, from_square: str, to_square: str, promotion: Optional[str] = None) -> MoveResult: ...

    def turn(self, state: Any) -> str: ...

    def is_game_over(self, state: Any) -> Tuple[bool, Optional[str]]: ...

    def snapshot(self, state: Any) -> Dict[str, Any]: ...


class ChessRulesEngine:
    """Standard chess on top of ``chess.Board``.

    States are treated as immutable: ``apply_move`` works on a copy and the
    caller decides whether to keep the returned board.
    """

    def new_game(self) -> chess.Board:
        return chess.Board()

    def apply_move(self, state: chess.Board, from_square: str, to_square: str, promotion: Optional[str] = None) -> MoveResult:
        try:
            from_index = chess.parse_square(from_square)
            to_index = chess.parse_square(to_square)
        except ValueError:
            raise IllegalMoveError(from_square, to_square, promotion)

        promotion_piece = None
        # a promotion piece on any other move is ignored, not rejected
        if promotion is not None and self._is_promotion(state, from_index, to_index):
            promotion_piece = PROMOTION_PIECES.get(promotion.lower())
            if promotion_piece is None:
                raise IllegalMoveError(from_square, to_square, promotion)

        move = chess.Move(from_index, to_index, promotion=promotion_piece)
        if move not in state.legal_moves:
            raise IllegalMoveError(from_square, to_square, promotion)

        color = self.turn(state)
        san = state.san(move)
        board = state.copy()
        board.push(move)
        logger.debug(f"Applied {san} for {color}, new fen: {board.fen()}")
        return MoveResult(state=board, san=san, color=color)

    @staticmethod
    def _is_promotion(state: chess.Board, from_index: chess.Square, to_index: chess.Square) -> bool:
        piece = state.piece_at(from_index)
        return (
            piece is not None
            and piece.piece_type == chess.PAWN
            and chess.square_rank(to_index) in (0, 7)
        )

    def turn(self, state: chess.Board) -> str:
        return WHITE if state.turn == chess.WHITE else BLACK

    def is_draw(self, state: chess.Board) -> bool:
        return (
            state.halfmove_clock >= 100
            or state.is_stalemate()
            or state.is_insufficient_material()
            or state.is_repetition(3)
        )

    def is_game_over(self, state: chess.Board) -> Tuple[bool, Optional[str]]:
        if state.is_checkmate():
            return True, "checkmate"
        if state.is_stalemate():
            return True, "stalemate"
        if state.is_insufficient_material():
            return True, "insufficient_material"
        if state.is_repetition(3):
            return True, "threefold_repetition"
        if state.halfmove_clock >= 100:
            return True, "fifty_moves"
        return False, None

    def snapshot(self, state: chess.Board) -> Dict[str, Any]:
        over, _ = self.is_game_over(state)
        return {
            "fen": state.fen(),
            "turn": self.turn(state),
            "isGameOver": over,
            "isCheck": state.is_check(),
            "isCheckmate": state.is_checkmate(),
            "isDraw": self.is_draw(state),
            "isStalemate": state.is_stalemate(),
            "isThreefoldRepetition": state.is_repetition(3),
            "isInsufficientMaterial": state.is_insufficient_material(),
        }
