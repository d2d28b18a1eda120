from pydantic import BaseModel, Field, ConfigDict

"""
pydantic model for the structured chat answer
"""
class VideoChatbotResponse(BaseModel):
    """Structured answer returned by the chat model for one question."""
    model_config = ConfigDict(extra="forbid")

    answer: str = Field(..., description="The answer to the question about the video.")


"""
prompts
"""
FRAME_CAPTION_SYSTEM_PROMPT = """
You are an assistant that writes captions for still frames taken from a video.
Describe what is visible: the setting, the people or objects present, any readable text, and any action
that appears to be taking place. Do not speculate about things that are not visible in the frame.
"""

FRAME_CAPTION_PROMPT = """
Generate a short, descriptive caption for this video frame.
Return a JSON object with a single "caption" field.
"""

VIDEO_SUMMARY_SYSTEM_PROMPT = """
You summarize videos. You are given the captions of frames sampled uniformly in time from a single video,
in the order they appear in the video. Write a concise narrative summary of the whole video that
describes how the content develops from beginning to end.
"""

VIDEO_SUMMARY_PROMPT = """
Frame captions, in order:
{captions}

Return a JSON object with a single "summary" field.
"""

VIDEO_CHATBOT_SYSTEM_PROMPT = """
You are a chatbot that answers questions about a video. Use the provided video frames and the video summary
to answer the user's question accurately. Prioritize information from the video itself over the summary if
there is a conflict.
"""

VIDEO_CHATBOT_PROMPT = """
The images attached to this message are frames taken at even intervals across the whole video, in order.

Video Summary: {summary}

Chat History:
{chat_history}

Question: {question}

Answer:
"""
